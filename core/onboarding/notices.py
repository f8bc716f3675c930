"""
User-facing notices raised by the autosave pipeline.

The session posts notices here; a UI (or a test) reads them or subscribes.
Only critical errors and recovery prompts are blocking.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from utils.formatting import format_age, format_label_preview


class NoticeLevel(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class NoticeKind(Enum):
    PARTIAL_SAVE = "partial_save"
    SAVE_FAILED = "save_failed"
    VALIDATION_WARNING = "validation_warning"
    VERSION_CONFLICT = "version_conflict"
    CONFLICT_REFRESHED = "conflict_refreshed"
    RELOAD_REQUIRED = "reload_required"
    RECOVERY_AVAILABLE = "recovery_available"
    CRITICAL_ERROR = "critical_error"


@dataclass(frozen=True)
class Notice:
    kind: NoticeKind
    level: NoticeLevel
    message: str
    description: Optional[str] = None
    steps: tuple[int, ...] = ()
    blocking: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)


NoticeListener = Callable[[Notice], None]


class NoticeSink:
    """Collects notices in order and forwards them to listeners."""

    def __init__(self):
        self._notices: list[Notice] = []
        self._listeners: list[NoticeListener] = []

    def subscribe(self, listener: NoticeListener) -> None:
        self._listeners.append(listener)

    def post(self, notice: Notice) -> Notice:
        self._notices.append(notice)
        for listener in self._listeners:
            listener(notice)
        return notice

    @property
    def notices(self) -> list[Notice]:
        return list(self._notices)

    def of_kind(self, kind: NoticeKind) -> list[Notice]:
        return [n for n in self._notices if n.kind == kind]

    def clear(self) -> None:
        self._notices.clear()


# =============================================================================
# Notice Builders
# =============================================================================


def partial_save_notice(saved: int, total: int) -> Notice:
    return Notice(
        kind=NoticeKind.PARTIAL_SAVE,
        level=NoticeLevel.WARNING,
        message=f"Saved {saved}/{total} changes. Some changes may be retried.",
    )


def save_failed_notice(steps: list[int]) -> Notice:
    return Notice(
        kind=NoticeKind.SAVE_FAILED,
        level=NoticeLevel.WARNING,
        message="Auto-save failed. Your changes are backed up locally and will be retried.",
        steps=tuple(steps),
    )


def validation_notice(field_names: list[str], steps: list[int], blocking_current: bool) -> Notice:
    """
    Warning listing the affected fields.

    blocking_current is set when navigation is gated on validation and the
    current step is among the rejected ones.
    """
    if blocking_current:
        return Notice(
            kind=NoticeKind.VALIDATION_WARNING,
            level=NoticeLevel.ERROR,
            message="Please fix the highlighted fields before continuing.",
            description=f"Some details are still missing: {format_label_preview(field_names)}",
            steps=tuple(steps),
        )
    return Notice(
        kind=NoticeKind.VALIDATION_WARNING,
        level=NoticeLevel.WARNING,
        message=f"Some details are still missing: {format_label_preview(field_names)}",
        description="You can keep going and come back to these fields later.",
        steps=tuple(steps),
    )


def conflict_notice(steps: list[int]) -> Notice:
    return Notice(
        kind=NoticeKind.VERSION_CONFLICT,
        level=NoticeLevel.WARNING,
        message="Some changes could not be saved because newer data exists. Refreshing step data...",
        steps=tuple(steps),
    )


def conflict_refreshed_notice(steps: list[int]) -> Notice:
    return Notice(
        kind=NoticeKind.CONFLICT_REFRESHED,
        level=NoticeLevel.INFO,
        message="Latest data loaded. Please review your changes.",
        steps=tuple(steps),
    )


def reload_required_notice(steps: list[int]) -> Notice:
    return Notice(
        kind=NoticeKind.RELOAD_REQUIRED,
        level=NoticeLevel.ERROR,
        message="Could not refresh data after conflict. Please reload the page.",
        steps=tuple(steps),
    )


def recovery_notice(saved_at: datetime, now: datetime, steps: list[int]) -> Notice:
    return Notice(
        kind=NoticeKind.RECOVERY_AVAILABLE,
        level=NoticeLevel.INFO,
        message="Unsaved work was found on this device.",
        description=f"Backup from {format_age(now - saved_at)}. Restore it or discard it.",
        steps=tuple(steps),
        blocking=True,
    )


def critical_error_notice(attempts: int) -> Notice:
    return Notice(
        kind=NoticeKind.CRITICAL_ERROR,
        level=NoticeLevel.ERROR,
        message="Your onboarding progress could not be loaded. Please reload the page.",
        description=f"Gave up after {attempts} attempts.",
        blocking=True,
    )
