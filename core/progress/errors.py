"""
Server-side onboarding errors.

Routes translate these into HTTP statuses:
RecordNotFoundError -> 404, InvalidStepError -> 400,
StepValidationError -> 422, VersionConflictError -> 409.
"""

from __future__ import annotations

from typing import Optional


class OnboardingError(Exception):
    """Base class for onboarding backend errors."""


class RecordNotFoundError(OnboardingError):
    def __init__(self, record_id: str):
        super().__init__(f"Onboarding record {record_id} not found")
        self.record_id = record_id


class InvalidStepError(OnboardingError):
    def __init__(self, step: object):
        super().__init__(f"Invalid step number: {step!r}")
        self.step = step


class StepValidationError(OnboardingError):
    """Payload rejected for client-input reasons; carries field -> message."""

    def __init__(self, step: int, errors: dict[str, str]):
        super().__init__(f"Invalid step payload for step {step}")
        self.step = step
        self.errors = dict(errors)


class VersionConflictError(OnboardingError):
    """Stored version no longer matches the version the client sent."""

    def __init__(self, step: int, expected: Optional[int], actual: int):
        super().__init__(
            f"Version conflict on step {step}: client sent {expected}, stored version is {actual}"
        )
        self.step = step
        self.expected = expected
        self.actual = actual


def error_response(error: OnboardingError) -> tuple[int, dict]:
    """HTTP status and JSON body for a backend error."""
    if isinstance(error, RecordNotFoundError):
        return 404, {"success": False, "message": str(error)}
    if isinstance(error, InvalidStepError):
        return 400, {"success": False, "message": str(error)}
    if isinstance(error, StepValidationError):
        return 422, {"success": False, "message": str(error), "errors": dict(error.errors)}
    if isinstance(error, VersionConflictError):
        return 409, {
            "success": False,
            "message": str(error),
            "expected_version": error.expected,
            "current_version": error.actual,
        }
    return 500, {"success": False, "message": str(error)}
