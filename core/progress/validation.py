"""
Step Payload Validation - Lenient Checks for Autosave

Autosave sends partial step data, so missing fields are never an error here.
Only values that are present and malformed are rejected. Completeness is a
separate question answered by the data-exists predicates in consistency.py.

Error keys are payload field names; "_step" is used for step-level problems.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Final, Optional

from core.progress.schema import ROW_SECTIONS, REVIEW_STEP


EMAIL_REGEX: Final = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_REGEX: Final = re.compile(r"^\+?[0-9 ()\-]{6,20}$")
ACCOUNT_NUMBER_REGEX: Final = re.compile(r"^[A-Za-z0-9 ]{4,34}$")


# =============================================================================
# Validation Result
# =============================================================================


@dataclass(frozen=True)
class StepValidationResult:
    """Outcome of validating one step payload."""

    valid: bool
    errors: dict[str, str]

    def to_dict(self) -> dict:
        return {"valid": self.valid, "errors": dict(self.errors)}


# =============================================================================
# Field Checks
# =============================================================================


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _check_non_negative_int(value: Any) -> Optional[str]:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or int(value) != value:
        return "Must be a whole number"
    if value < 0:
        return "Must not be negative"
    return None


def _check_email(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not EMAIL_REGEX.match(value.strip()):
        return "Please enter a valid email address"
    return None


def _check_phone(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not PHONE_REGEX.match(value.strip()):
        return "Please enter a valid phone number"
    return None


def _check_percentage(value: Any) -> Optional[str]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return "Must be a number"
    if not 0 <= value <= 100:
        return "Must be between 0 and 100"
    return None


def _check_iso_date(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return "Must be a date (YYYY-MM-DD)"
    try:
        date.fromisoformat(value[:10])
    except ValueError:
        return "Must be a date (YYYY-MM-DD)"
    return None


def _check_account_number(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not ACCOUNT_NUMBER_REGEX.match(value.strip()):
        return "Account number must be 4-34 letters or digits"
    return None


def _check_bool(value: Any) -> Optional[str]:
    if not isinstance(value, bool):
        return "Must be true or false"
    return None


FieldCheck = Callable[[Any], Optional[str]]

FIELD_CHECKS: Final[dict[int, dict[str, FieldCheck]]] = {
    1: {
        "bedrooms": _check_non_negative_int,
        "bathrooms": _check_non_negative_int,
        "maxGuests": _check_non_negative_int,
    },
    2: {
        "email": _check_email,
        "phone": _check_phone,
    },
    3: {
        "commissionRate": _check_percentage,
        "contractStartDate": _check_iso_date,
        "contractEndDate": _check_iso_date,
    },
    4: {
        "accountNumber": _check_account_number,
    },
    REVIEW_STEP: {
        "confirmed": _check_bool,
    },
}


# =============================================================================
# Validation Functions
# =============================================================================


def validate_step_payload(step: int, payload: Any) -> StepValidationResult:
    """
    Validate a step payload for autosave.

    Args:
        step: Step number (already known to be valid)
        payload: Raw payload from the client

    Returns:
        StepValidationResult with field -> message errors
    """
    if not isinstance(payload, dict):
        return StepValidationResult(valid=False, errors={"_step": "Step data must be an object"})

    errors: dict[str, str] = {}

    for field_name, check in FIELD_CHECKS.get(step, {}).items():
        value = payload.get(field_name)
        if _is_blank(value):
            continue
        message = check(value)
        if message:
            errors[field_name] = message

    row_key = ROW_SECTIONS.get(step)
    if row_key and row_key in payload:
        rows = payload[row_key]
        if not isinstance(rows, list):
            errors[row_key] = "Must be a list"
        elif any(not isinstance(row, dict) for row in rows):
            errors[row_key] = "Every entry must be an object"

    return StepValidationResult(valid=not errors, errors=errors)
