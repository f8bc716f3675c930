"""
Save Scheduler - When Flushes Happen

Three triggers ask for a flush: a debounce timer restarted on every edit, a
periodic timer, and explicit requests. The scheduler turns them into at most
one running flush.

Gates, checked in order:
1. single-flight: a request while a flush runs is skipped
2. nothing pending: skipped without consuming the rate window
3. rate floor: a request sooner than the minimum interval after the last
   started flush is skipped (forced requests bypass this gate only)

Skipped edits stay dirty; the next debounce or periodic tick picks them up.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from core.onboarding.schema import FlushResult, FlushStatus, FlushTrigger


logger = logging.getLogger(__name__)

FlushCallback = Callable[[FlushTrigger], Awaitable[FlushResult]]


class SaveScheduler:
    """
    Debounce, periodic and manual flush triggers with a single-flight guard.

    Usage:
        scheduler = SaveScheduler(session._run_flush, session.has_pending_changes)
        scheduler.start()          # periodic timer
        scheduler.notify_change()  # restart debounce
        await scheduler.request_flush(FlushTrigger.MANUAL)
        scheduler.cancel()
    """

    def __init__(
        self,
        flush: FlushCallback,
        has_pending: Callable[[], bool],
        debounce_seconds: float = 5.0,
        min_seconds_between_saves: float = 2.0,
        periodic_seconds: float = 35.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._flush = flush
        self._has_pending = has_pending
        self._debounce_seconds = debounce_seconds
        self._min_interval = min_seconds_between_saves
        self._periodic_seconds = periodic_seconds
        self._clock = clock

        self._in_flight = False
        self._last_started: Optional[float] = None
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._periodic_task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._cancelled = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def debounce_pending(self) -> bool:
        return self._debounce_handle is not None

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    def notify_change(self) -> None:
        """Restart the debounce timer. No-op outside a running event loop."""
        if self._cancelled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; debounce not armed")
            return
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        self._debounce_handle = loop.call_later(self._debounce_seconds, self._on_debounce)

    def _on_debounce(self) -> None:
        self._debounce_handle = None
        if self._cancelled:
            return
        task = asyncio.ensure_future(self.request_flush(FlushTrigger.DEBOUNCE))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Scheduled flush failed: %s", error, exc_info=error)

    def start(self) -> None:
        """Start the periodic timer. Must be called inside a running loop."""
        if self._periodic_task is None and not self._cancelled:
            self._periodic_task = asyncio.ensure_future(self._periodic_loop())

    async def _periodic_loop(self) -> None:
        while not self._cancelled:
            await asyncio.sleep(self._periodic_seconds)
            if self._has_pending():
                try:
                    await self.request_flush(FlushTrigger.PERIODIC)
                except Exception as e:
                    logger.error("Periodic flush failed: %s", e, exc_info=True)

    # -------------------------------------------------------------------------
    # Flush
    # -------------------------------------------------------------------------

    async def request_flush(self, trigger: FlushTrigger, force: bool = False) -> FlushResult:
        """
        Run one flush if every gate passes.

        Args:
            trigger: What asked for the flush
            force: Bypass the rate floor (single-flight still applies)
        """
        if self._cancelled:
            return FlushResult(FlushStatus.SKIPPED_INACTIVE, trigger)
        if self._in_flight:
            logger.debug("Flush (%s) skipped: another flush is in flight", trigger.value)
            return FlushResult(FlushStatus.SKIPPED_IN_FLIGHT, trigger)
        if not self._has_pending():
            return FlushResult(FlushStatus.SKIPPED_EMPTY, trigger)

        now = self._clock()
        if (
            not force
            and self._last_started is not None
            and now - self._last_started < self._min_interval
        ):
            logger.debug("Flush (%s) skipped: rate limited", trigger.value)
            return FlushResult(FlushStatus.SKIPPED_RATE_LIMITED, trigger)

        self._in_flight = True
        self._last_started = now
        self._idle.clear()
        try:
            return await self._flush(trigger)
        finally:
            self._in_flight = False
            self._idle.set()

    async def wait_idle(self) -> None:
        """Wait until no flush is running."""
        await self._idle.wait()

    def cancel(self) -> None:
        """
        Stop all timers. A flush already running is not interrupted; its
        result is discarded by the owner.
        """
        self._cancelled = True
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        if self._periodic_task is not None:
            self._periodic_task.cancel()
            self._periodic_task = None
