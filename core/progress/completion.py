"""
Data-Based Step Completion

One pure predicate per step answers "does the record hold real data for this
step?". The progress payload reports the answers as `data_complete` next to
the legacy flags, and the consistency audit compares them with both.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Final, Optional

from core.progress.schema import ONBOARDING_STEPS, OnboardingRecord


logger = logging.getLogger(__name__)


# =============================================================================
# Data-Exists Predicates
# =============================================================================

# One pure function per step: does the record hold real data for this step?
DataExistsPredicate = Callable[[OnboardingRecord], bool]


def _all_populated(section: dict[str, Any], fields: tuple[str, ...]) -> bool:
    return all(bool(section.get(name)) for name in fields)


def villa_info_exists(record: OnboardingRecord) -> bool:
    return _all_populated(record.villa, ("address", "city", "country", "bedrooms", "bathrooms"))


def owner_details_exist(record: OnboardingRecord) -> bool:
    return _all_populated(record.owner, ("firstName", "lastName", "email", "phone"))


def contractual_details_exist(record: OnboardingRecord) -> bool:
    return _all_populated(record.contract, ("contractStartDate", "contractType", "commissionRate"))


def bank_details_exist(record: OnboardingRecord) -> bool:
    return _all_populated(record.bank, ("accountHolderName", "bankName", "accountNumber"))


def ota_credentials_exist(record: OnboardingRecord) -> bool:
    return any(row.get("isActive", True) for row in record.ota_credentials)


def documents_exist(record: OnboardingRecord) -> bool:
    return any(row.get("isActive", True) for row in record.documents)


def staff_exists(record: OnboardingRecord) -> bool:
    return any(row.get("isActive", True) for row in record.staff)


def facilities_exist(record: OnboardingRecord) -> bool:
    return any(row.get("isAvailable") is True for row in record.facilities)


def photos_exist(record: OnboardingRecord) -> bool:
    return len(record.photos) > 0


def review_submitted(record: OnboardingRecord) -> bool:
    return record.submitted_at is not None


STEP_DATA_PREDICATES: Final[dict[int, DataExistsPredicate]] = {
    1: villa_info_exists,
    2: owner_details_exist,
    3: contractual_details_exist,
    4: bank_details_exist,
    5: ota_credentials_exist,
    6: documents_exist,
    7: staff_exists,
    8: facilities_exist,
    9: photos_exist,
    10: review_submitted,
}


def data_exists(
    record: OnboardingRecord,
    step: int,
    predicates: Optional[dict[int, DataExistsPredicate]] = None,
) -> bool:
    """
    Evaluate one step's predicate.

    A predicate that raises is logged and counts as no data.
    """
    predicate = (predicates if predicates is not None else STEP_DATA_PREDICATES).get(step)
    if predicate is None:
        return False
    try:
        return bool(predicate(record))
    except Exception:
        logger.exception("Error checking data existence for step %s of %s", step, record.record_id)
        return False


def data_based_completion(record: OnboardingRecord) -> dict[int, bool]:
    """Step number -> whether its data is complete."""
    return {step: data_exists(record, step) for step in ONBOARDING_STEPS}
