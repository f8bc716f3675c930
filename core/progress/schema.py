"""
Onboarding Record Schema - Server-Side Progress Model

Defines the villa onboarding record as the backend stores it.

Progress is tracked three ways, kept deliberately separate:
1. Legacy boolean completion flags on the record summary
2. Per-step status rows (NOT_STARTED / IN_PROGRESS / COMPLETED)
3. The domain data itself (villa, owner, contract, bank, rows per step)

Each step also carries an optimistic-concurrency version counter.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Final, Optional


# =============================================================================
# Constants
# =============================================================================

TOTAL_STEPS: Final[int] = 10

ONBOARDING_STEPS: Final[tuple[int, ...]] = tuple(range(1, TOTAL_STEPS + 1))

STEP_NAMES: Final[dict[int, str]] = {
    1: "Villa Information",
    2: "Owner Details",
    3: "Contractual Details",
    4: "Bank Details",
    5: "OTA Credentials",
    6: "Documents Upload",
    7: "Staff Configuration",
    8: "Facilities Checklist",
    9: "Photo Upload",
    10: "Review & Submit",
}

# Legacy completion flag per step on the record summary row
STEP_FLAG_FIELDS: Final[dict[int, str]] = {
    1: "villaInfoCompleted",
    2: "ownerDetailsCompleted",
    3: "contractualDetailsCompleted",
    4: "bankDetailsCompleted",
    5: "otaCredentialsCompleted",
    6: "documentsUploaded",
    7: "staffConfigCompleted",
    8: "facilitiesCompleted",
    9: "photosUploaded",
    10: "reviewCompleted",
}

# Steps whose data is a single sub-record (field -> value)
MAPPING_SECTIONS: Final[dict[int, str]] = {
    1: "villa",
    2: "owner",
    3: "contract",
    4: "bank",
}

# Steps whose data is a list of rows, stored under the same key in the payload
ROW_SECTIONS: Final[dict[int, str]] = {
    5: "ota_credentials",
    6: "documents",
    7: "staff",
    8: "facilities",
    9: "photos",
}

REVIEW_STEP: Final[int] = 10


def step_name(step: int) -> str:
    """Get the display name of a step."""
    return STEP_NAMES.get(step, f"Step {step}")


def is_valid_step(step: Any) -> bool:
    """Check that a value is a known step number."""
    return isinstance(step, int) and not isinstance(step, bool) and step in ONBOARDING_STEPS


# =============================================================================
# Enums
# =============================================================================


class StepStatus(Enum):
    """Per-step status row."""

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


# =============================================================================
# Session Counters
# =============================================================================


@dataclass
class OnboardingSessionRow:
    """Denormalised counters about the editing session of a record."""

    steps_completed: int = 0
    current_step: int = 1
    last_activity_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "steps_completed": self.steps_completed,
            "current_step": self.current_step,
            "last_activity_at": self.last_activity_at.isoformat() if self.last_activity_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OnboardingSessionRow":
        last = data.get("last_activity_at")
        return cls(
            steps_completed=int(data.get("steps_completed", 0)),
            current_step=int(data.get("current_step", 1)),
            last_activity_at=datetime.fromisoformat(last) if last else None,
        )


# =============================================================================
# Onboarding Record
# =============================================================================


def _empty_flags() -> dict[str, bool]:
    return {flag: False for flag in STEP_FLAG_FIELDS.values()}


def _initial_statuses() -> dict[int, StepStatus]:
    return {step: StepStatus.NOT_STARTED for step in ONBOARDING_STEPS}


@dataclass
class OnboardingRecord:
    """
    One villa going through onboarding.

    ``step_data`` holds the last accepted payload per step exactly as the client
    sent it; the domain sections hold the same data in the shape the
    data-exists checks read.
    """

    record_id: str
    property_name: str
    created_at: datetime

    # === DOMAIN DATA ===
    villa: dict[str, Any] = field(default_factory=dict)
    owner: dict[str, Any] = field(default_factory=dict)
    contract: dict[str, Any] = field(default_factory=dict)
    bank: dict[str, Any] = field(default_factory=dict)
    ota_credentials: list[dict[str, Any]] = field(default_factory=list)
    documents: list[dict[str, Any]] = field(default_factory=list)
    staff: list[dict[str, Any]] = field(default_factory=list)
    facilities: list[dict[str, Any]] = field(default_factory=list)
    photos: list[dict[str, Any]] = field(default_factory=list)
    submitted_at: Optional[datetime] = None

    # === PROGRESS REPRESENTATIONS ===
    flags: dict[str, bool] = field(default_factory=_empty_flags)
    step_progress: dict[int, StepStatus] = field(default_factory=_initial_statuses)
    session: Optional[OnboardingSessionRow] = None

    # === CONCURRENCY ===
    step_versions: dict[int, int] = field(default_factory=dict)
    step_data: dict[int, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def create(cls, property_name: str) -> "OnboardingRecord":
        """Create a fresh record with a session row and no progress."""
        return cls(
            record_id=f"VILLA-{uuid.uuid4().hex[:12].upper()}",
            property_name=property_name,
            created_at=datetime.utcnow(),
            session=OnboardingSessionRow(last_activity_at=datetime.utcnow()),
        )

    def version_of(self, step: int) -> int:
        return self.step_versions.get(step, 0)

    def status_of(self, step: int) -> StepStatus:
        return self.step_progress.get(step, StepStatus.NOT_STARTED)

    def flag_of(self, step: int) -> bool:
        flag_field = STEP_FLAG_FIELDS.get(step)
        return bool(flag_field and self.flags.get(flag_field, False))

    def apply_section(self, step: int, data: dict[str, Any]) -> None:
        """Map a step payload onto its domain section."""
        if step in MAPPING_SECTIONS:
            section: dict[str, Any] = getattr(self, MAPPING_SECTIONS[step])
            section.update(copy.deepcopy(data))
        elif step in ROW_SECTIONS:
            key = ROW_SECTIONS[step]
            rows = data.get(key)
            if isinstance(rows, list):
                setattr(self, key, [copy.deepcopy(r) for r in rows if isinstance(r, dict)])

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for persistence."""
        return {
            "record_id": self.record_id,
            "property_name": self.property_name,
            "created_at": self.created_at.isoformat(),
            "villa": self.villa,
            "owner": self.owner,
            "contract": self.contract,
            "bank": self.bank,
            "ota_credentials": self.ota_credentials,
            "documents": self.documents,
            "staff": self.staff,
            "facilities": self.facilities,
            "photos": self.photos,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "flags": self.flags,
            "step_progress": {str(s): st.value for s, st in self.step_progress.items()},
            "session": self.session.to_dict() if self.session else None,
            "step_versions": {str(s): v for s, v in self.step_versions.items()},
            "step_data": {str(s): d for s, d in self.step_data.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OnboardingRecord":
        """Rebuild a record from its persisted dictionary."""
        submitted_at = data.get("submitted_at")
        session = data.get("session")
        flags = _empty_flags()
        flags.update({k: bool(v) for k, v in data.get("flags", {}).items()})
        statuses = _initial_statuses()
        statuses.update({
            int(s): StepStatus(v) for s, v in data.get("step_progress", {}).items()
        })
        return cls(
            record_id=data["record_id"],
            property_name=data.get("property_name", ""),
            created_at=datetime.fromisoformat(data["created_at"]),
            villa=dict(data.get("villa", {})),
            owner=dict(data.get("owner", {})),
            contract=dict(data.get("contract", {})),
            bank=dict(data.get("bank", {})),
            ota_credentials=list(data.get("ota_credentials", [])),
            documents=list(data.get("documents", [])),
            staff=list(data.get("staff", [])),
            facilities=list(data.get("facilities", [])),
            photos=list(data.get("photos", [])),
            submitted_at=datetime.fromisoformat(submitted_at) if submitted_at else None,
            flags=flags,
            step_progress=statuses,
            session=OnboardingSessionRow.from_dict(session) if session else None,
            step_versions={int(s): int(v) for s, v in data.get("step_versions", {}).items()},
            step_data={int(s): dict(d) for s, d in data.get("step_data", {}).items()},
        )
