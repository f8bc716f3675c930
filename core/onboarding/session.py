"""
Onboarding Session - The Client Sync Engine

One OnboardingSession owns the wizard state for one record: the step data
store, the version ledger, the blocked set, the scheduler, the persistence
client, the conflict reconciler and the local backup.

Flush pipeline:
1. build a batch from dirty, unblocked steps (oldest edit first, capped)
2. save every step concurrently and wait for all of them
3. apply outcomes in one step: adopt versions, clean saved steps,
   block rejected steps
4. reconcile conflicts by re-fetching the record
5. post notices, then write a backup

Principles:
1. At most one flush runs at a time
2. A step is sent only with the version the server last reported for it
3. A rejected step is not re-sent until it is edited again
4. After dispose, no late result mutates state or posts notices
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from core.onboarding.backup import JsonFileKeyValueStorage, KeyValueStorage, LocalBackupStore
from core.onboarding.client import VersionedPersistenceClient, parse_progress_steps
from core.onboarding.errors import CriticalExhaustionError
from core.onboarding.notices import (
    NoticeSink,
    critical_error_notice,
    partial_save_notice,
    recovery_notice,
    save_failed_notice,
    validation_notice,
)
from core.onboarding.reconcile import ConflictReconciler
from core.onboarding.scheduler import SaveScheduler
from core.onboarding.schema import (
    BackupSnapshot,
    BatchSummary,
    FlushResult,
    FlushStatus,
    FlushTrigger,
    SaveOutcome,
)
from core.onboarding.step_store import StepDataStore, VersionLedger, deep_equal
from core.onboarding.transport import HttpOnboardingApi, OnboardingApi, TokenProvider
from core.progress.schema import ONBOARDING_STEPS, TOTAL_STEPS
from utils.config import Config
from utils.logging import OnboardingEventLogger


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AutosaveSettings:
    """Timing and policy knobs for one session."""

    debounce_seconds: float = 5.0
    min_seconds_between_saves: float = 2.0
    periodic_save_seconds: float = 35.0
    max_batch_size: int = 5
    initial_load_max_retries: int = 3
    retry_base_seconds: float = 1.0
    validation_blocks_navigation: bool = False

    @classmethod
    def from_config(cls, config: Config) -> "AutosaveSettings":
        return cls(
            debounce_seconds=config.debounce_seconds,
            min_seconds_between_saves=config.min_seconds_between_saves,
            periodic_save_seconds=config.periodic_save_seconds,
            max_batch_size=config.max_batch_size,
            initial_load_max_retries=config.initial_load_max_retries,
            validation_blocks_navigation=config.validation_blocks_navigation,
        )


class OnboardingSession:
    """
    Client-side wizard session with debounced, versioned autosave.

    Usage:
        session = OnboardingSession(api, LocalBackupStore(storage), record_id="VILLA-...")
        await session.start()
        session.set_step_data(2, {"firstName": "Ayu"})
        await session.flush()
        await session.complete()
        session.dispose()
    """

    def __init__(
        self,
        api: OnboardingApi,
        backup: LocalBackupStore,
        record_id: Optional[str] = None,
        settings: Optional[AutosaveSettings] = None,
        notices: Optional[NoticeSink] = None,
        client_fingerprint: str = "python-client",
        clock: Optional[Callable[[], float]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._settings = settings or AutosaveSettings()
        self._record_id = record_id
        self._session_id = uuid.uuid4().hex
        self._client_fingerprint = client_fingerprint
        self._sleep = sleep
        self._active = True
        self._flush_counter = 0

        self._events = OnboardingEventLogger("onboarding.session", record_id)
        self._notices = notices or NoticeSink()
        self._store = StepDataStore()
        self._ledger = VersionLedger()
        self._blocked: set[int] = set()
        self._validation_errors: dict[int, dict[str, str]] = {}
        self._current_step = 1
        self._last_saved_at: Optional[datetime] = None
        self._last_summary: Optional[BatchSummary] = None

        self._backup = backup
        self._client = VersionedPersistenceClient(api, self._ledger, self._events)
        self._reconciler = ConflictReconciler(
            self._client,
            self._store,
            self._ledger,
            self._notices,
            is_active=lambda: self._active,
            events=self._events,
        )
        scheduler_kwargs = {} if clock is None else {"clock": clock}
        self._scheduler = SaveScheduler(
            self._run_flush,
            self.has_pending_changes,
            debounce_seconds=self._settings.debounce_seconds,
            min_seconds_between_saves=self._settings.min_seconds_between_saves,
            periodic_seconds=self._settings.periodic_save_seconds,
            **scheduler_kwargs,
        )

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def record_id(self) -> Optional[str]:
        return self._record_id

    @property
    def settings(self) -> AutosaveSettings:
        return self._settings

    @property
    def active(self) -> bool:
        return self._active

    @property
    def notices(self) -> NoticeSink:
        return self._notices

    @property
    def store(self) -> StepDataStore:
        return self._store

    @property
    def ledger(self) -> VersionLedger:
        return self._ledger

    @property
    def scheduler(self) -> SaveScheduler:
        return self._scheduler

    @property
    def current_step(self) -> int:
        return self._current_step

    @property
    def blocked_steps(self) -> set[int]:
        return set(self._blocked)

    @property
    def last_summary(self) -> Optional[BatchSummary]:
        return self._last_summary

    @property
    def last_saved_at(self) -> Optional[datetime]:
        return self._last_saved_at

    def validation_errors(self, step: int) -> dict[str, str]:
        return dict(self._validation_errors.get(step, {}))

    def pending_steps(self) -> list[int]:
        """Dirty steps that may be sent, oldest edit first."""
        return [step for step in self._store.dirty_steps() if step not in self._blocked]

    def has_pending_changes(self) -> bool:
        return bool(self.pending_steps())

    def get_step_data(self, step: int) -> dict[str, Any]:
        return self._store.get_step_data(step)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self, property_name: str = "New Villa") -> dict[str, Any]:
        """
        Load (or create) the record and start the periodic timer.

        Retries with exponential backoff. Once the retry budget is spent a
        blocking critical notice is posted.

        Raises:
            CriticalExhaustionError: If every attempt failed
        """
        attempts = 0
        max_attempts = self._settings.initial_load_max_retries + 1
        while True:
            try:
                if self._record_id is None:
                    created = await self._client.start_onboarding(property_name)
                    self._record_id = created["record_id"]
                    self._events.record_id = self._record_id
                progress = await self._client.fetch_progress(self._record_id)
                self._install_progress(progress)
                break
            except Exception as e:
                attempts += 1
                self._events.track_error("SESSION", e, {"context": "initial_load", "attempt": attempts})
                if attempts >= max_attempts:
                    self._notices.post(critical_error_notice(attempts))
                    raise CriticalExhaustionError(attempts, e) from e
                await self._sleep(self._settings.retry_base_seconds * 2 ** (attempts - 1))

        self._scheduler.start()
        try:
            self._backup.sweep()
        except Exception as e:
            self._events.track_error("BACKUP", e, {"context": "sweep"})

        self._events.log("SESSION", "SESSION_STARTED", {"current_step": self._current_step})
        return progress

    def _install_progress(self, progress: dict[str, Any]) -> None:
        steps = parse_progress_steps(progress)
        for step, view in steps.items():
            self._ledger.adopt(step, view.version)
            self._store.replace_step(step, view.data)
        current = progress.get("current_step", 1)
        if isinstance(current, int) and 1 <= current <= TOTAL_STEPS:
            self._current_step = current

    def dispose(self) -> None:
        """Stop timers and ignore any result that arrives later."""
        if not self._active:
            return
        self._active = False
        self._scheduler.cancel()
        self._events.log("SESSION", "SESSION_DISPOSED")

    async def complete(self) -> bool:
        """
        Flush everything still pending, then drop local backups.

        Backups are kept when something could not be saved.

        Returns:
            True when no unsaved local changes remain
        """
        for _ in range(len(ONBOARDING_STEPS)):
            await self._scheduler.wait_idle()
            if not self.has_pending_changes():
                break
            result = await self.flush(force=True)
            if result.status == FlushStatus.SKIPPED_IN_FLIGHT:
                continue
            if result.summary is None or not result.summary.successful_steps:
                break

        if self._store.dirty_steps():
            self._events.warn("SESSION", "COMPLETE_WITH_UNSAVED", {"dirty": self._store.dirty_steps()})
            return False

        try:
            self._backup.clear(self._record_id)
        except Exception as e:
            self._events.track_error("BACKUP", e, {"context": "clear"})
        self._events.log("SESSION", "SESSION_COMPLETED")
        return True

    # -------------------------------------------------------------------------
    # Editing
    # -------------------------------------------------------------------------

    def set_step_data(self, step: int, data: dict[str, Any]) -> bool:
        """
        Record a local edit.

        A changed value unblocks the step and writes a backup. Every call
        restarts the debounce timer.

        Returns:
            True when the data changed
        """
        if not self._active:
            self._events.warn(step, "EDIT_AFTER_DISPOSE")
            return False

        changed = self._store.set_step_data(step, data)
        if changed:
            self._blocked.discard(step)
            self._validation_errors.pop(step, None)
            self._write_backup_now()
        self._scheduler.notify_change()
        return changed

    async def navigate_to(self, step: int) -> bool:
        """
        Move to another step, saving pending edits first.

        Validation problems only block when the policy says so.

        Returns:
            False when navigation was refused
        """
        if not 1 <= step <= TOTAL_STEPS:
            raise ValueError(f"Unknown step: {step}")

        await self.flush()
        leaving = self._current_step
        if (
            self._settings.validation_blocks_navigation
            and step > leaving
            and leaving in self._validation_errors
        ):
            self._events.log(leaving, "NAVIGATION_BLOCKED", {"target": step})
            return False

        self._current_step = step
        self._write_backup_now()
        return True

    async def flush(self, force: bool = False) -> FlushResult:
        """Ask for a flush now (still subject to single-flight)."""
        return await self._scheduler.request_flush(FlushTrigger.MANUAL, force=force)

    # -------------------------------------------------------------------------
    # Flush Pipeline
    # -------------------------------------------------------------------------

    def _build_batch(self) -> list[tuple[int, dict[str, Any]]]:
        steps = self.pending_steps()[: self._settings.max_batch_size]
        return [(step, self._store.get_step_data(step)) for step in steps]

    async def _run_flush(self, trigger: FlushTrigger) -> FlushResult:
        if not self._active:
            return FlushResult(FlushStatus.SKIPPED_INACTIVE, trigger)
        if self._record_id is None:
            return FlushResult(FlushStatus.SKIPPED_NO_RECORD, trigger)

        batch = self._build_batch()
        if not batch:
            return FlushResult(FlushStatus.SKIPPED_EMPTY, trigger)

        self._flush_counter += 1
        record_id = self._record_id
        summary = await self._client.save_batch(record_id, batch, self._flush_counter)

        if not self._active:
            self._events.log("AUTOSAVE", "RESULT_DISCARDED", {"flush_id": self._flush_counter})
            return FlushResult(FlushStatus.DISCARDED, trigger, summary)

        self._apply_outcomes(summary)
        self._last_summary = summary

        if summary.conflicted_steps:
            result = await self._reconciler.reconcile(record_id, summary.conflicted_steps)
            if not self._active:
                return FlushResult(FlushStatus.DISCARDED, trigger, summary)
            if result.success:
                for step in summary.conflicted_steps:
                    self._blocked.discard(step)
                    self._validation_errors.pop(step, None)
            else:
                # Stale version; hold until the next edit
                self._blocked.update(summary.conflicted_steps)

        self._post_flush_notices(summary)
        # Storage is only ever touched from the loop thread
        self._write_backup_now()
        return FlushResult(FlushStatus.COMPLETED, trigger, summary)

    def _apply_outcomes(self, summary: BatchSummary) -> None:
        """Adopt versions, clean saved steps and block rejected ones. No awaits."""
        for result in summary.results:
            if result.succeeded and result.version is not None:
                self._ledger.adopt(result.step_number, result.version)
                self._store.mark_saved(result.step_number, result.payload)
                self._blocked.discard(result.step_number)
                self._validation_errors.pop(result.step_number, None)

        for result in summary.results:
            if result.outcome != SaveOutcome.VALIDATION_REJECTED:
                continue
            step = result.step_number
            if not deep_equal(self._store.get_step_data(step), result.payload):
                # Edited while the rejected save was in flight; the new data is eligible
                self._events.log(step, "REJECTION_SUPERSEDED", {"operation_id": result.operation_id})
                continue
            self._blocked.add(step)
            self._validation_errors[step] = dict(result.errors)

        if summary.successful_steps:
            self._last_saved_at = datetime.utcnow()

    def _post_flush_notices(self, summary: BatchSummary) -> None:
        if summary.validation_steps:
            field_names = [
                name
                for step in summary.validation_steps
                for name in summary.validation_errors.get(step, {})
            ]
            blocking_current = (
                self._settings.validation_blocks_navigation
                and self._current_step in summary.validation_steps
            )
            self._notices.post(validation_notice(field_names, summary.validation_steps, blocking_current))

        if summary.should_notify_partial_save:
            self._notices.post(partial_save_notice(len(summary.successful_steps), len(summary.results)))
        elif summary.transient_steps and not summary.successful_steps and not summary.conflicted_steps:
            self._notices.post(save_failed_notice(summary.transient_steps))

    # -------------------------------------------------------------------------
    # Backup And Recovery
    # -------------------------------------------------------------------------

    def _snapshot(self) -> BackupSnapshot:
        return BackupSnapshot.capture(
            session_id=self._session_id,
            record_id=self._record_id,
            current_step=self._current_step,
            step_data=self._store.snapshot(),
            client_fingerprint=self._client_fingerprint,
        )

    def _write_backup_now(self) -> None:
        try:
            self._backup.save(self._snapshot())
        except Exception as e:
            self._events.track_error("BACKUP", e, {"context": "backup_save"})

    def offer_recovery(self, now: Optional[datetime] = None) -> Optional[BackupSnapshot]:
        """
        Fresh backup whose data differs from what is loaded, if any.

        Posts a blocking recovery notice when one is found.
        """
        try:
            snapshot = self._backup.recover(self._record_id)
        except Exception as e:
            self._events.track_error("BACKUP", e, {"context": "recover"})
            return None
        if snapshot is None:
            return None

        differing = [
            step for step, data in snapshot.step_data.items()
            if step in ONBOARDING_STEPS and not deep_equal(self._store.get_step_data(step), data)
        ]
        if not differing:
            return None

        self._notices.post(recovery_notice(snapshot.saved_at, now or datetime.utcnow(), differing))
        return snapshot

    def accept_recovery(self, snapshot: BackupSnapshot) -> list[int]:
        """
        Re-apply backed-up data as local edits so it is saved normally.

        Returns:
            Steps whose data changed
        """
        restored = [
            step
            for step, data in sorted(snapshot.step_data.items())
            if step in ONBOARDING_STEPS and self.set_step_data(step, data)
        ]
        if 1 <= snapshot.current_step <= TOTAL_STEPS:
            self._current_step = snapshot.current_step
        self._events.log(
            "SESSION",
            "DATA_RECOVERED",
            {"session_id": snapshot.session_id, "steps": restored},
        )
        return restored

    def decline_recovery(self) -> None:
        try:
            self._backup.clear(self._record_id)
        except Exception as e:
            self._events.track_error("BACKUP", e, {"context": "clear"})
        self._events.log("SESSION", "RECOVERY_DECLINED")


def create_session(
    record_id: Optional[str] = None,
    config: Optional[Config] = None,
    token_provider: Optional[TokenProvider] = None,
    storage: Optional[KeyValueStorage] = None,
) -> OnboardingSession:
    """
    Session wired from configuration.

    Uses the HTTP transport against ONBOARDING_API_URL and keeps backups in
    a JSON file under DATA_DIR unless another storage is given.
    """
    config = config or Config.load()
    api = HttpOnboardingApi(
        config.api_url,
        timeout=config.request_timeout,
        token_provider=token_provider,
    )
    if storage is None:
        storage = JsonFileKeyValueStorage(Path(config.data_dir) / "onboarding_backups.json")
    return OnboardingSession(
        api,
        LocalBackupStore.from_config(storage, config),
        record_id=record_id,
        settings=AutosaveSettings.from_config(config),
    )
