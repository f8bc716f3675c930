"""
Structured logging for onboarding autosave and audit operations.

Every line carries a category (a step number, "AUTOSAVE", "SESSION", "SYSTEM",
"AUDIT") and an event name so log output can be grepped per step.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(debug: bool = False) -> None:
    """Install a stream handler on the root logger once."""
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)


class OnboardingEventLogger:
    """
    Emits category/event/details lines for the autosave pipeline.

    Usage:
        events = OnboardingEventLogger()
        events.log(3, "AUTOSAVE_REQUEST", {"version": 2})
        events.track_error("AUTOSAVE", exc, {"context": "batch_save"})
    """

    def __init__(self, name: str = "onboarding", record_id: Optional[str] = None):
        self.logger = logging.getLogger(name)
        self.record_id = record_id

    def _format(self, category: Union[int, str], event: str, details: Optional[dict[str, Any]]) -> str:
        prefix = f"step{category}" if isinstance(category, int) else str(category)
        message = f"[{prefix}] {event}"
        if self.record_id:
            message += f" record={self.record_id}"
        if details:
            message += f" details={details}"
        return message

    def log(
        self,
        category: Union[int, str],
        event: str,
        details: Optional[dict[str, Any]] = None,
        level: int = logging.INFO,
    ) -> None:
        """Log a structured event."""
        self.logger.log(level, self._format(category, event, details))

    def warn(self, category: Union[int, str], event: str, details: Optional[dict[str, Any]] = None) -> None:
        self.log(category, event, details, level=logging.WARNING)

    def track_error(
        self,
        category: Union[int, str],
        error: BaseException,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log an error with its type and message."""
        merged = {"error": type(error).__name__, "message": str(error)}
        if details:
            merged.update(details)
        self.logger.error(self._format(category, "ERROR", merged))
