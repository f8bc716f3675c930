"""
Villa Onboarding Client - Debounced, Versioned Autosave

Keeps wizard edits in a local store, flushes dirty steps to the backend in
small concurrent batches, recovers from version conflicts by re-fetching
the record, and backs everything up locally so no work is lost.

Principles:
1. At most one flush in flight
2. Every save carries the step version the server last reported
3. A conflicted payload is never re-sent under its stale version
4. Local backup failures never stop the session
"""

from core.onboarding.schema import (
    SaveOutcome,
    FlushTrigger,
    FlushStatus,
    SaveOperation,
    StepSaveResult,
    BatchSummary,
    FlushResult,
    BackupSnapshot,
    BACKUP_FORMAT_VERSION,
)
from core.onboarding.errors import (
    AutosaveError,
    AuthUnavailableError,
    TransientSaveError,
    ReconciliationError,
    CriticalExhaustionError,
)
from core.onboarding.step_store import (
    StepDataStore,
    VersionLedger,
    deep_equal,
)
from core.onboarding.backup import (
    KeyValueStorage,
    InMemoryKeyValueStorage,
    JsonFileKeyValueStorage,
    LocalBackupStore,
    LATEST_BACKUP_KEY,
    RECORD_BACKUP_PREFIX,
    record_backup_key,
)
from core.onboarding.transport import (
    ApiResponse,
    OnboardingApi,
    HttpOnboardingApi,
    InProcessOnboardingApi,
)
from core.onboarding.client import (
    VersionedPersistenceClient,
    classify_response,
    parse_backend_errors,
    parse_progress_steps,
)
from core.onboarding.notices import (
    Notice,
    NoticeKind,
    NoticeLevel,
    NoticeSink,
)
from core.onboarding.reconcile import (
    ConflictReconciler,
    ReconciliationResult,
)
from core.onboarding.scheduler import SaveScheduler
from core.onboarding.session import (
    AutosaveSettings,
    OnboardingSession,
    create_session,
)

__all__ = [
    # Schema
    "SaveOutcome",
    "FlushTrigger",
    "FlushStatus",
    "SaveOperation",
    "StepSaveResult",
    "BatchSummary",
    "FlushResult",
    "BackupSnapshot",
    "BACKUP_FORMAT_VERSION",
    # Errors
    "AutosaveError",
    "AuthUnavailableError",
    "TransientSaveError",
    "ReconciliationError",
    "CriticalExhaustionError",
    # Local state
    "StepDataStore",
    "VersionLedger",
    "deep_equal",
    # Backup
    "KeyValueStorage",
    "InMemoryKeyValueStorage",
    "JsonFileKeyValueStorage",
    "LocalBackupStore",
    "LATEST_BACKUP_KEY",
    "RECORD_BACKUP_PREFIX",
    "record_backup_key",
    # Transport and client
    "ApiResponse",
    "OnboardingApi",
    "HttpOnboardingApi",
    "InProcessOnboardingApi",
    "VersionedPersistenceClient",
    "classify_response",
    "parse_backend_errors",
    "parse_progress_steps",
    # Notices
    "Notice",
    "NoticeKind",
    "NoticeLevel",
    "NoticeSink",
    # Orchestration
    "ConflictReconciler",
    "ReconciliationResult",
    "SaveScheduler",
    "AutosaveSettings",
    "OnboardingSession",
    "create_session",
]
