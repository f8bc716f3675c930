"""
Onboarding Service - Versioned Step Updates

Server half of the autosave protocol. Each step of a record has a version
counter; a step update is accepted only when the client sends the version the
server currently holds (compare-and-swap), and every accepted update advances
that step's version by exactly one.

Update outcomes:
- accepted          -> (progress payload, new version)
- malformed payload -> StepValidationError (422)
- stale version     -> VersionConflictError (409)
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from core.progress.completion import data_based_completion
from core.progress.errors import (
    InvalidStepError,
    RecordNotFoundError,
    StepValidationError,
    VersionConflictError,
)
from core.progress.repository import OnboardingRepository
from core.progress.schema import (
    ONBOARDING_STEPS,
    REVIEW_STEP,
    STEP_FLAG_FIELDS,
    TOTAL_STEPS,
    OnboardingRecord,
    StepStatus,
    is_valid_step,
    step_name,
)
from core.progress.validation import validate_step_payload


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepUpdateResult:
    """Returned when a step update is accepted."""

    record_id: str
    step: int
    version: int
    progress: dict[str, Any]


def determine_current_step(record: OnboardingRecord) -> int:
    """First step that is not completed, or the last step when all are."""
    for step in ONBOARDING_STEPS:
        if record.status_of(step) != StepStatus.COMPLETED:
            return step
    return TOTAL_STEPS


def build_progress_payload(record: OnboardingRecord) -> dict[str, Any]:
    """
    Authoritative progress view of a record.

    Each step carries the legacy `completed` flag and the derived
    `data_complete` flag. Completion counts use the derived flags.
    Step keys are strings so the payload survives a JSON round trip unchanged.
    """
    data_complete = data_based_completion(record)
    completed_steps = [step for step, complete in data_complete.items() if complete]
    return {
        "record_id": record.record_id,
        "property_name": record.property_name,
        "current_step": determine_current_step(record),
        "submitted_at": record.submitted_at.isoformat() if record.submitted_at else None,
        "completed_steps": completed_steps,
        "completion_percentage": round(len(completed_steps) / TOTAL_STEPS * 100),
        "steps": {
            str(step): {
                "name": step_name(step),
                "version": record.version_of(step),
                "status": record.status_of(step).value,
                "completed": record.flag_of(step),
                "data_complete": data_complete[step],
                "data": copy.deepcopy(record.step_data.get(step, {})),
            }
            for step in ONBOARDING_STEPS
        },
    }


class OnboardingService:
    """
    Record lifecycle and versioned step updates.

    Usage:
        service = OnboardingService(repository)
        record = service.start_onboarding("Villa Serenity")
        result = service.update_step(record.record_id, 1, {"address": "..."}, version=0)
    """

    def __init__(self, repository: OnboardingRepository):
        self._repository = repository

    @property
    def repository(self) -> OnboardingRepository:
        return self._repository

    def _require(self, record_id: str) -> OnboardingRecord:
        record = self._repository.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    def start_onboarding(self, property_name: str) -> OnboardingRecord:
        """Create a new record with a session row and nothing saved yet."""
        record = OnboardingRecord.create(property_name)
        self._repository.add(record)
        logger.info("Started onboarding %s (%s)", record.record_id, property_name)
        return record

    def get_progress(self, record_id: str) -> dict[str, Any]:
        """Return the authoritative progress payload for a record."""
        return build_progress_payload(self._require(record_id))

    def update_step(
        self,
        record_id: str,
        step: int,
        data: Any,
        version: Optional[int],
        completed: bool = False,
        operation_id: Optional[str] = None,
        client_timestamp: Optional[str] = None,
    ) -> StepUpdateResult:
        """
        Apply one step update with compare-and-swap on the step version.

        Args:
            record_id: Record to update
            step: Step number (1..10)
            data: Step payload (field -> value)
            version: Version the client last saw for this step
            completed: Mark the step completed (explicit "next" navigation)
            operation_id: Client operation ID, logged only
            client_timestamp: Client clock at send time, logged only

        Raises:
            RecordNotFoundError, InvalidStepError, StepValidationError,
            VersionConflictError
        """
        record = self._require(record_id)

        if not is_valid_step(step):
            raise InvalidStepError(step)

        validation = validate_step_payload(step, data)
        if not validation.valid:
            logger.info(
                "Rejected step %s payload for %s (operation %s): %s",
                step, record_id, operation_id, validation.errors,
            )
            raise StepValidationError(step, validation.errors)

        stored_version = record.version_of(step)
        if version is None or version != stored_version:
            logger.info(
                "Version conflict on %s step %s (operation %s): sent %s, stored %s",
                record_id, step, operation_id, version, stored_version,
            )
            raise VersionConflictError(step, version, stored_version)

        record.step_data[step] = copy.deepcopy(data)
        record.apply_section(step, data)

        if completed:
            record.step_progress[step] = StepStatus.COMPLETED
            record.flags[STEP_FLAG_FIELDS[step]] = True
            if step == REVIEW_STEP:
                record.submitted_at = datetime.utcnow()
        elif record.status_of(step) == StepStatus.NOT_STARTED:
            record.step_progress[step] = StepStatus.IN_PROGRESS

        new_version = stored_version + 1
        record.step_versions[step] = new_version
        self._update_session_counters(record)
        self._repository.save(record)

        logger.debug(
            "Saved %s step %s at version %s (operation %s, client time %s)",
            record_id, step, new_version, operation_id, client_timestamp,
        )
        return StepUpdateResult(
            record_id=record_id,
            step=step,
            version=new_version,
            progress=build_progress_payload(record),
        )

    @staticmethod
    def _update_session_counters(record: OnboardingRecord) -> None:
        """Recompute the session row from the per-step statuses."""
        if record.session is None:
            return
        completed = sum(
            1 for status in record.step_progress.values() if status == StepStatus.COMPLETED
        )
        record.session.steps_completed = completed
        record.session.current_step = min(TOTAL_STEPS, max(1, completed + 1))
        record.session.last_activity_at = datetime.utcnow()
