"""
Onboarding Repository - Storage for Onboarding Records

Provides storage and retrieval for villa onboarding records.
This is an in-memory implementation with optional JSON file persistence.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from core.progress.schema import OnboardingRecord


logger = logging.getLogger(__name__)


# =============================================================================
# Repository
# =============================================================================


class OnboardingRepository:
    """
    Repository for storing and retrieving onboarding records.

    Uses in-memory storage with optional file persistence.
    """

    def __init__(self, persist_path: Optional[str] = None):
        """
        Initialise repository.

        Args:
            persist_path: Optional path to persist data to JSON file
        """
        self._records: dict[str, OnboardingRecord] = {}
        self._persist_path = Path(persist_path) if persist_path else None

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    def _save_to_file(self) -> None:
        """Persist data to file."""
        if not self._persist_path:
            return

        data = {
            "records": {rid: record.to_dict() for rid, record in self._records.items()},
            "saved_at": datetime.utcnow().isoformat(),
        }

        self._persist_path.parent.mkdir(parents=True, exist_ok=True)
        self._persist_path.write_text(json.dumps(data, indent=2))

    def _load_from_file(self) -> None:
        """Load data from file."""
        if not self._persist_path or not self._persist_path.exists():
            return

        try:
            data = json.loads(self._persist_path.read_text())
            for rid, record_data in data.get("records", {}).items():
                self._records[rid] = OnboardingRecord.from_dict(record_data)
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            # Start fresh rather than refuse to boot
            logger.warning("Could not load onboarding repository data: %s", e)

    # =========================================================================
    # CRUD Operations
    # =========================================================================

    def add(self, record: OnboardingRecord) -> OnboardingRecord:
        """
        Store a new record.

        Raises:
            ValueError: If record_id already exists
        """
        if record.record_id in self._records:
            raise ValueError(f"Record {record.record_id} already exists")

        self._records[record.record_id] = record
        self._save_to_file()
        return record

    def get(self, record_id: str) -> Optional[OnboardingRecord]:
        """Get a record by ID, or None if not found."""
        return self._records.get(record_id)

    def save(self, record: OnboardingRecord) -> None:
        """Persist changes made to a record obtained from this repository."""
        self._records[record.record_id] = record
        self._save_to_file()

    def delete(self, record_id: str) -> bool:
        """Delete a record. Returns True if it existed."""
        if record_id in self._records:
            del self._records[record_id]
            self._save_to_file()
            return True
        return False

    # =========================================================================
    # Query Operations
    # =========================================================================

    def list_ids(self) -> list[str]:
        """Get all record IDs, oldest first."""
        return [
            r.record_id
            for r in sorted(self._records.values(), key=lambda r: r.created_at)
        ]

    def list_all(self) -> list[OnboardingRecord]:
        """Get all records, oldest first."""
        return sorted(self._records.values(), key=lambda r: r.created_at)

    def count(self) -> int:
        """Get total number of records."""
        return len(self._records)


# =============================================================================
# Singleton Instance
# =============================================================================

_repository_instance: Optional[OnboardingRepository] = None


def get_onboarding_repository(persist_path: Optional[str] = None) -> OnboardingRepository:
    """
    Get the onboarding repository singleton.

    Args:
        persist_path: Optional path for persistence (only used on first call)
    """
    global _repository_instance
    if _repository_instance is None:
        _repository_instance = OnboardingRepository(persist_path or "data/onboarding.json")
    return _repository_instance


def reset_onboarding_repository() -> None:
    """Drop the singleton (used by tests)."""
    global _repository_instance
    _repository_instance = None
