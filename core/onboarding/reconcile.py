"""
Conflict Reconciler - Recover From Stale Versions

A VERSION_CONFLICT means another writer advanced the step on the server.
The conflicted payload is never re-sent under its stale version. Instead
the reconciler fetches the authoritative record and adopts it:

- conflicted steps: server data and version replace local state wholesale
- clean steps: same, so they mirror the server
- other dirty steps: local edits are kept, the server version and data
  become their version and baseline, and they stay queued for the next flush

A failed re-fetch leaves local state untouched and asks for a reload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from core.onboarding.client import (
    StepProgressView,
    VersionedPersistenceClient,
    parse_progress_steps,
)
from core.onboarding.errors import ReconciliationError
from core.onboarding.notices import (
    NoticeSink,
    conflict_notice,
    conflict_refreshed_notice,
    reload_required_notice,
)
from core.onboarding.step_store import StepDataStore, VersionLedger
from utils.logging import OnboardingEventLogger


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationResult:
    success: bool
    refreshed_steps: tuple[int, ...] = ()
    preserved_steps: tuple[int, ...] = ()
    error: Optional[str] = None
    discarded: bool = False


class ConflictReconciler:
    """
    Re-fetch and adopt server state after a version conflict.

    Usage:
        reconciler = ConflictReconciler(client, store, ledger, notices)
        result = await reconciler.reconcile(record_id, conflicted_steps=[2])
    """

    def __init__(
        self,
        client: VersionedPersistenceClient,
        store: StepDataStore,
        ledger: VersionLedger,
        notices: NoticeSink,
        is_active: Callable[[], bool] = lambda: True,
        events: Optional[OnboardingEventLogger] = None,
    ):
        self._client = client
        self._store = store
        self._ledger = ledger
        self._notices = notices
        self._is_active = is_active
        self._events = events or OnboardingEventLogger("onboarding.reconcile")

    async def _fetch_server_steps(self, record_id: str) -> dict[int, StepProgressView]:
        """
        Raises:
            ReconciliationError: If the record could not be fetched or parsed
        """
        try:
            progress = await self._client.fetch_progress(record_id)
            return parse_progress_steps(progress)
        except Exception as e:
            raise ReconciliationError(f"Could not refresh {record_id}: {e}") from e

    async def reconcile(self, record_id: str, conflicted_steps: Sequence[int]) -> ReconciliationResult:
        conflicted = sorted(set(conflicted_steps))
        self._notices.post(conflict_notice(conflicted))
        self._events.warn("AUTOSAVE", "VERSION_CONFLICT", {"steps": conflicted})

        try:
            server_steps = await self._fetch_server_steps(record_id)
        except ReconciliationError as e:
            self._events.track_error("AUTOSAVE", e, {"context": "conflict_refresh", "steps": conflicted})
            if self._is_active():
                self._notices.post(reload_required_notice(conflicted))
            return ReconciliationResult(success=False, error=str(e))

        if not self._is_active():
            logger.info("Session closed during conflict refresh for %s; discarding result", record_id)
            return ReconciliationResult(success=False, discarded=True)

        refreshed: list[int] = []
        preserved: list[int] = []
        for step, view in sorted(server_steps.items()):
            self._ledger.adopt(step, view.version)
            if step in conflicted or not self._store.is_dirty(step):
                self._store.replace_step(step, view.data)
                refreshed.append(step)
            else:
                self._store.rebase_step(step, view.data)
                preserved.append(step)

        self._notices.post(conflict_refreshed_notice(conflicted))
        self._events.log(
            "AUTOSAVE",
            "CONFLICT_RECONCILED",
            {"conflicted": conflicted, "preserved": preserved},
        )
        return ReconciliationResult(
            success=True,
            refreshed_steps=tuple(refreshed),
            preserved_steps=tuple(preserved),
        )
