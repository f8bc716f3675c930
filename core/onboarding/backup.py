"""
Local Backup Store - Durable Wizard Snapshots

Keeps a copy of the whole wizard state in key-value storage so work survives
reloads and offline periods. Two keys are written on every backup: one
scoped to the record and one generic "latest" key.

Principles:
1. Backup failures are reported, never fatal to the session
2. Snapshots older than the freshness window are never offered
3. The sweep removes stale and unreadable entries under the backup prefix only
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Final, Optional

from core.onboarding.schema import BackupSnapshot
from utils.config import Config
from utils.logging import OnboardingEventLogger


logger = logging.getLogger(__name__)

LATEST_BACKUP_KEY: Final[str] = "onboarding_latest_backup"
RECORD_BACKUP_PREFIX: Final[str] = "onboarding_backup_"


def record_backup_key(record_id: str) -> str:
    return f"{RECORD_BACKUP_PREFIX}{record_id}"


# =============================================================================
# Key-Value Storage
# =============================================================================


class KeyValueStorage(ABC):
    """String key -> string value storage."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def keys(self) -> list[str]:
        ...


class InMemoryKeyValueStorage(KeyValueStorage):
    def __init__(self):
        self._items: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = value

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class JsonFileKeyValueStorage(KeyValueStorage):
    """
    Storage backed by a single JSON object on disk.

    Every write rewrites the file.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._items: dict[str, str] = {}
        self._load_from_file()

    def _load_from_file(self) -> None:
        if not self._path.exists():
            return
        try:
            with open(self._path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not load backup storage from %s: %s", self._path, e)
            return
        if isinstance(data, dict):
            self._items = {str(k): str(v) for k, v in data.items()}

    def _save_to_file(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w") as f:
            json.dump(self._items, f, indent=2, sort_keys=True)

    def get(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = value
        self._save_to_file()

    def delete(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._save_to_file()

    def keys(self) -> list[str]:
        return list(self._items)


# =============================================================================
# Backup Store
# =============================================================================


class LocalBackupStore:
    """
    Save, recover, clear and sweep wizard snapshots.

    Usage:
        store = LocalBackupStore(InMemoryKeyValueStorage())
        store.save(snapshot)
        snapshot = store.recover(record_id)   # None when missing or stale
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        max_age: timedelta = timedelta(hours=24),
        sweep_age: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = datetime.utcnow,
        events: Optional[OnboardingEventLogger] = None,
    ):
        self._storage = storage
        self._max_age = max_age
        self._sweep_age = sweep_age
        self._clock = clock
        self._events = events or OnboardingEventLogger("onboarding.backup")

    @classmethod
    def from_config(cls, storage: KeyValueStorage, config: Config) -> "LocalBackupStore":
        return cls(
            storage,
            max_age=timedelta(hours=config.backup_max_age_hours),
            sweep_age=timedelta(days=config.backup_sweep_days),
        )

    @property
    def storage(self) -> KeyValueStorage:
        return self._storage

    def save(self, snapshot: BackupSnapshot) -> None:
        """
        Write the snapshot under the record key (when known) and the latest key.

        Raises:
            OSError: If the underlying storage write fails
        """
        raw = snapshot.to_json()
        if snapshot.record_id:
            self._storage.set(record_backup_key(snapshot.record_id), raw)
        self._storage.set(LATEST_BACKUP_KEY, raw)

    def _read(self, key: str) -> Optional[BackupSnapshot]:
        raw = self._storage.get(key)
        if raw is None:
            return None
        try:
            return BackupSnapshot.from_json(raw)
        except (ValueError, TypeError) as e:
            self._events.warn("BACKUP", "Ignoring unreadable backup", {"key": key, "error": str(e)})
            return None

    def is_fresh(self, snapshot: BackupSnapshot) -> bool:
        return self._clock() - snapshot.saved_at <= self._max_age

    def recover(self, record_id: Optional[str] = None) -> Optional[BackupSnapshot]:
        """
        Newest usable snapshot for a record.

        Prefers the record-scoped key and falls back to the latest key when
        that snapshot belongs to the same record (or to no record yet).
        Snapshots older than the freshness window are never returned.
        """
        candidates: list[BackupSnapshot] = []
        if record_id:
            scoped = self._read(record_backup_key(record_id))
            if scoped is not None:
                candidates.append(scoped)

        latest = self._read(LATEST_BACKUP_KEY)
        if latest is not None and (latest.record_id is None or latest.record_id == record_id):
            candidates.append(latest)

        for snapshot in candidates:
            if not self.is_fresh(snapshot):
                self._events.log(
                    "BACKUP",
                    "Skipping stale backup",
                    {"session_id": snapshot.session_id, "saved_at": snapshot.saved_at.isoformat()},
                )
                continue
            self._events.log(
                "BACKUP",
                "Backup available for recovery",
                {
                    "session_id": snapshot.session_id,
                    "record_id": snapshot.record_id,
                    "steps": sorted(snapshot.step_data),
                },
            )
            return snapshot
        return None

    def clear(self, record_id: Optional[str] = None) -> None:
        """
        Remove backups after completion or an explicit decline.

        With a record_id only that record's backups go (the latest key too,
        when it holds that record). Without one, every backup goes.
        """
        if record_id is None:
            for key in self._backup_keys():
                self._storage.delete(key)
            return

        self._storage.delete(record_backup_key(record_id))
        raw_latest = self._storage.get(LATEST_BACKUP_KEY)
        if raw_latest is None:
            return
        latest = self._read(LATEST_BACKUP_KEY)
        if latest is None or latest.record_id in (None, record_id):
            self._storage.delete(LATEST_BACKUP_KEY)

    def _backup_keys(self) -> list[str]:
        return [
            key for key in self._storage.keys()
            if key == LATEST_BACKUP_KEY or key.startswith(RECORD_BACKUP_PREFIX)
        ]

    def sweep(self) -> int:
        """
        Delete backups older than the sweep age, and unreadable ones.

        Returns:
            Number of entries removed
        """
        cutoff = self._clock() - self._sweep_age
        removed = 0
        for key in self._backup_keys():
            snapshot = self._read(key)
            if snapshot is None or snapshot.saved_at < cutoff:
                self._storage.delete(key)
                removed += 1

        if removed:
            self._events.log("BACKUP", "Swept old backups", {"removed": removed})
        return removed
