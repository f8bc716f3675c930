"""
Client-side autosave errors.

Only CriticalExhaustionError is meant to reach the user as a blocking error.
The others are caught at the batch or session boundary and turned into
outcomes and notices.
"""

from __future__ import annotations


class AutosaveError(Exception):
    """Base class for client-side autosave errors."""


class AuthUnavailableError(AutosaveError):
    """No auth token could be obtained. Retried like a transient failure."""


class TransientSaveError(AutosaveError):
    """Network or server failure unrelated to validation or versions."""


class ReconciliationError(AutosaveError):
    """The authoritative re-fetch after a version conflict failed."""


class CriticalExhaustionError(AutosaveError):
    """Initial session load failed more times than the retry budget allows."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"Initial load failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error
