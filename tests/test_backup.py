"""
Tests for the local backup store: freshness, record scoping, clearing and
the sweep of stale entries.
"""

from __future__ import annotations

import json
import tempfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from core.onboarding import (
    LATEST_BACKUP_KEY,
    BackupSnapshot,
    InMemoryKeyValueStorage,
    JsonFileKeyValueStorage,
    LocalBackupStore,
    record_backup_key,
)


NOW = datetime(2026, 3, 1, 12, 0, 0)


def make_snapshot(record_id="VILLA-1", age=timedelta(hours=1), step_data=None, session_id="s1"):
    return BackupSnapshot.capture(
        session_id=session_id,
        record_id=record_id,
        current_step=2,
        step_data=step_data or {2: {"firstName": "Ayu"}},
        client_fingerprint="pytest",
        saved_at=NOW - age,
    )


@pytest.fixture
def storage():
    return InMemoryKeyValueStorage()


@pytest.fixture
def backups(storage):
    return LocalBackupStore(storage, clock=lambda: NOW)


class TestRecovery:
    """Only fresh, readable snapshots are offered."""

    def test_recent_snapshot_is_offered(self, backups):
        backups.save(make_snapshot(age=timedelta(hours=1)))
        recovered = backups.recover("VILLA-1")
        assert recovered is not None
        assert recovered.step_data == {2: {"firstName": "Ayu"}}
        assert recovered.current_step == 2

    def test_snapshot_older_than_a_day_is_not_offered(self, backups):
        backups.save(make_snapshot(age=timedelta(hours=25)))
        assert backups.recover("VILLA-1") is None

    def test_falls_back_to_latest_key(self, backups, storage):
        backups.save(make_snapshot())
        storage.delete(record_backup_key("VILLA-1"))
        assert backups.recover("VILLA-1") is not None

    def test_latest_key_for_another_record_is_ignored(self, backups):
        backups.save(make_snapshot(record_id="VILLA-2"))
        assert backups.recover("VILLA-1") is None

    def test_snapshot_without_record_is_offered(self, backups):
        backups.save(make_snapshot(record_id=None))
        assert backups.recover("VILLA-1") is not None

    def test_unreadable_snapshot_is_skipped(self, backups, storage):
        storage.set(record_backup_key("VILLA-1"), "{broken")
        assert backups.recover("VILLA-1") is None

    def test_offset_timestamp_is_read_as_utc(self, backups, storage):
        stored = make_snapshot().to_dict()
        # 19:00 in Bali (+08:00) is 11:00 UTC, one hour before NOW
        stored["saved_at"] = "2026-03-01T19:00:00+08:00"
        storage.set(record_backup_key("VILLA-1"), json.dumps(stored))

        recovered = backups.recover("VILLA-1")

        assert recovered is not None
        assert recovered.saved_at == datetime(2026, 3, 1, 11, 0, 0)
        assert recovered.saved_at.tzinfo is None

    def test_zulu_timestamp_is_parsed(self):
        stored = make_snapshot().to_dict()
        stored["saved_at"] = "2026-03-01T11:30:00.000Z"
        assert BackupSnapshot.from_dict(stored).saved_at == datetime(2026, 3, 1, 11, 30, 0)

    def test_snapshot_without_session_id_is_rejected(self):
        with pytest.raises(ValueError):
            BackupSnapshot.from_dict({"step_data": {}, "saved_at": NOW.isoformat()})


class TestClearAndSweep:
    def test_clear_record_removes_record_and_latest(self, backups, storage):
        backups.save(make_snapshot())
        backups.clear("VILLA-1")
        assert storage.keys() == []

    def test_clear_record_keeps_other_records_latest(self, backups, storage):
        backups.save(make_snapshot(record_id="VILLA-1"))
        backups.save(make_snapshot(record_id="VILLA-2"))
        backups.clear("VILLA-1")
        assert set(storage.keys()) == {record_backup_key("VILLA-2"), LATEST_BACKUP_KEY}

    def test_clear_all(self, backups, storage):
        storage.set("unrelated", "keep me")
        backups.save(make_snapshot(record_id="VILLA-1"))
        backups.save(make_snapshot(record_id="VILLA-2"))
        backups.clear()
        assert storage.keys() == ["unrelated"]

    def test_sweep_removes_old_and_unreadable_entries(self, backups, storage):
        backups.save(make_snapshot(record_id="VILLA-OLD", age=timedelta(days=8)))
        backups.save(make_snapshot(record_id="VILLA-NEW", age=timedelta(days=2)))
        storage.set(record_backup_key("VILLA-BAD"), "not json")
        storage.set("unrelated", "keep me")

        removed = backups.sweep()

        assert removed == 2
        assert set(storage.keys()) == {
            record_backup_key("VILLA-NEW"),
            LATEST_BACKUP_KEY,
            "unrelated",
        }

    def test_sweep_handles_offset_timestamps(self, backups, storage):
        stored = make_snapshot().to_dict()
        stored["saved_at"] = "2026-02-01T12:00:00+00:00"
        storage.set(record_backup_key("VILLA-1"), json.dumps(stored))

        assert backups.sweep() == 1
        assert storage.keys() == []


class TestJsonFileStorage:
    def test_entries_survive_reopen(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "backups.json"
            LocalBackupStore(JsonFileKeyValueStorage(path), clock=lambda: NOW).save(make_snapshot())

            reopened = LocalBackupStore(JsonFileKeyValueStorage(path), clock=lambda: NOW)
            assert reopened.recover("VILLA-1") is not None

    def test_corrupt_file_starts_empty(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "backups.json"
            path.write_text("[not, json")
            assert JsonFileKeyValueStorage(path).keys() == []
