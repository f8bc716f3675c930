"""
Autosave Schema - Client-Side Types for the Progress Sync Engine

Defines the save operation sent per step, the classified result of each
attempt, the per-flush summary, and the durable backup snapshot.
"""

from __future__ import annotations

import copy
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Final, Optional


BACKUP_FORMAT_VERSION: Final[str] = "1.0"


# =============================================================================
# Enums
# =============================================================================


class SaveOutcome(Enum):
    """Classification of one step-save attempt. Exactly one per attempt."""

    SUCCESS = "success"
    VALIDATION_REJECTED = "validation_rejected"
    VERSION_CONFLICT = "version_conflict"
    TRANSIENT_FAILURE = "transient_failure"


class FlushTrigger(Enum):
    """What asked for a flush."""

    DEBOUNCE = "debounce"
    PERIODIC = "periodic"
    MANUAL = "manual"


class FlushStatus(Enum):
    """What happened to a flush request."""

    COMPLETED = "completed"
    SKIPPED_IN_FLIGHT = "skipped_in_flight"
    SKIPPED_RATE_LIMITED = "skipped_rate_limited"
    SKIPPED_EMPTY = "skipped_empty"
    SKIPPED_NO_RECORD = "skipped_no_record"
    SKIPPED_INACTIVE = "skipped_inactive"
    DISCARDED = "discarded"  # Session disposed while the batch was in flight


# =============================================================================
# Save Operation
# =============================================================================


@dataclass(frozen=True)
class SaveOperation:
    """
    One save attempt for one step.

    operation_id is unique per attempt and used for logging/tracing only.
    """

    step_number: int
    payload: dict[str, Any]
    version: int
    operation_id: str
    client_timestamp: str

    @classmethod
    def create(cls, step_number: int, payload: dict[str, Any], version: int, flush_id: int) -> "SaveOperation":
        return cls(
            step_number=step_number,
            payload=copy.deepcopy(payload),
            version=version,
            operation_id=f"{flush_id}-{step_number}-{uuid.uuid4().hex[:8]}",
            client_timestamp=datetime.utcnow().isoformat(),
        )

    def to_request_body(self) -> dict[str, Any]:
        """Body for the step-save endpoint."""
        return {
            "stepNumber": self.step_number,
            "data": self.payload,
            "version": self.version,
            "operationId": self.operation_id,
            "clientTimestamp": self.client_timestamp,
        }


# =============================================================================
# Save Results
# =============================================================================


@dataclass(frozen=True)
class StepSaveResult:
    """Classified outcome of one SaveOperation."""

    step_number: int
    outcome: SaveOutcome
    operation_id: str
    sent_version: int
    payload: dict[str, Any]
    version: Optional[int] = None  # New server version (SUCCESS only)
    errors: dict[str, str] = field(default_factory=dict)  # Field messages (VALIDATION_REJECTED only)
    message: Optional[str] = None
    auth_unavailable: bool = False

    @property
    def succeeded(self) -> bool:
        return self.outcome == SaveOutcome.SUCCESS


@dataclass(frozen=True)
class BatchSummary:
    """Per-flush roll-up of step results, built once all attempts resolve."""

    results: tuple[StepSaveResult, ...]

    def _steps(self, outcome: SaveOutcome) -> list[int]:
        return [r.step_number for r in self.results if r.outcome == outcome]

    @property
    def successful_steps(self) -> list[int]:
        return self._steps(SaveOutcome.SUCCESS)

    @property
    def validation_steps(self) -> list[int]:
        return self._steps(SaveOutcome.VALIDATION_REJECTED)

    @property
    def conflicted_steps(self) -> list[int]:
        return self._steps(SaveOutcome.VERSION_CONFLICT)

    @property
    def transient_steps(self) -> list[int]:
        return self._steps(SaveOutcome.TRANSIENT_FAILURE)

    @property
    def version_updates(self) -> dict[int, int]:
        return {
            r.step_number: r.version
            for r in self.results
            if r.outcome == SaveOutcome.SUCCESS and r.version is not None
        }

    @property
    def validation_errors(self) -> dict[int, dict[str, str]]:
        return {
            r.step_number: dict(r.errors)
            for r in self.results
            if r.outcome == SaveOutcome.VALIDATION_REJECTED
        }

    @property
    def all_succeeded(self) -> bool:
        return len(self.successful_steps) == len(self.results)

    @property
    def should_notify_partial_save(self) -> bool:
        """
        Some but not all steps saved, and nothing else already produced a notice.

        Validation and conflict outcomes carry their own notices.
        """
        saved = len(self.successful_steps)
        if saved == 0 or saved == len(self.results):
            return False
        return not self.validation_steps and not self.conflicted_steps

    def to_dict(self) -> dict[str, Any]:
        return {
            "successful_steps": self.successful_steps,
            "validation_steps": self.validation_steps,
            "conflicted_steps": self.conflicted_steps,
            "transient_steps": self.transient_steps,
            "version_updates": self.version_updates,
        }


@dataclass(frozen=True)
class FlushResult:
    """Returned for every flush request, whether or not a batch was sent."""

    status: FlushStatus
    trigger: FlushTrigger
    summary: Optional[BatchSummary] = None

    @property
    def sent(self) -> bool:
        return self.summary is not None


# =============================================================================
# Backup Snapshot
# =============================================================================


def _parse_saved_at(value: str) -> datetime:
    """Parse an ISO timestamp into naive UTC (offsets and a trailing Z are converted)."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@dataclass(frozen=True)
class BackupSnapshot:
    """
    Durable copy of the whole wizard state.

    Written to local storage so work survives reloads and offline periods.
    """

    session_id: str
    record_id: Optional[str]
    current_step: int
    step_data: dict[int, dict[str, Any]]
    saved_at: datetime
    client_fingerprint: str
    format_version: str = BACKUP_FORMAT_VERSION

    @classmethod
    def capture(
        cls,
        session_id: str,
        record_id: Optional[str],
        current_step: int,
        step_data: dict[int, dict[str, Any]],
        client_fingerprint: str,
        saved_at: Optional[datetime] = None,
    ) -> "BackupSnapshot":
        return cls(
            session_id=session_id,
            record_id=record_id,
            current_step=current_step,
            step_data=copy.deepcopy(step_data),
            saved_at=saved_at or datetime.utcnow(),
            client_fingerprint=client_fingerprint,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "record_id": self.record_id,
            "current_step": self.current_step,
            "step_data": {str(step): data for step, data in self.step_data.items()},
            "saved_at": self.saved_at.isoformat(),
            "client_fingerprint": self.client_fingerprint,
            "version": self.format_version,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, default=str)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BackupSnapshot":
        """
        Parse a stored snapshot.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        if not data.get("session_id"):
            raise ValueError("Backup snapshot has no session_id")
        step_data = data.get("step_data")
        if not isinstance(step_data, dict):
            raise ValueError("Backup snapshot has no step_data")
        saved_at = data.get("saved_at")
        if not isinstance(saved_at, str):
            raise ValueError("Backup snapshot has no saved_at timestamp")

        return cls(
            session_id=str(data["session_id"]),
            record_id=data.get("record_id"),
            current_step=int(data.get("current_step", 1)),
            step_data={int(step): dict(values) for step, values in step_data.items()},
            saved_at=_parse_saved_at(saved_at),
            client_fingerprint=str(data.get("client_fingerprint", "unknown")),
            format_version=str(data.get("version", BACKUP_FORMAT_VERSION)),
        )

    @classmethod
    def from_json(cls, raw: str) -> "BackupSnapshot":
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Backup snapshot is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("Backup snapshot must be a JSON object")
        return cls.from_dict(data)
