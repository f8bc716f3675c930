"""
Villa Onboarding Progress - Server-Side Record Keeping

Stores onboarding records, applies versioned step updates and audits the
three overlapping progress representations for divergence.

Principles:
1. A step update is accepted only against the current step version
2. Every accepted update advances the version by exactly one
3. Autosave validation is lenient: present-and-malformed is an error, missing is not
4. The consistency audit reports, it never repairs
"""

from core.progress.schema import (
    OnboardingRecord,
    OnboardingSessionRow,
    StepStatus,
    STEP_NAMES,
    STEP_FLAG_FIELDS,
    ONBOARDING_STEPS,
    TOTAL_STEPS,
    step_name,
    is_valid_step,
)
from core.progress.errors import (
    OnboardingError,
    RecordNotFoundError,
    InvalidStepError,
    StepValidationError,
    VersionConflictError,
    error_response,
)
from core.progress.validation import (
    StepValidationResult,
    validate_step_payload,
)
from core.progress.repository import (
    OnboardingRepository,
    get_onboarding_repository,
    reset_onboarding_repository,
)
from core.progress.service import (
    OnboardingService,
    StepUpdateResult,
    build_progress_payload,
    determine_current_step,
)
from core.progress.completion import (
    STEP_DATA_PREDICATES,
    data_exists,
    data_based_completion,
)
from core.progress.consistency import (
    IssueType,
    Severity,
    OverallStatus,
    ConsistencyIssue,
    ConsistencyReport,
    AuditSummary,
    AuditRun,
    RepositoryProgressSource,
    ProgressConsistencyAuditor,
)

__all__ = [
    # Schema
    "OnboardingRecord",
    "OnboardingSessionRow",
    "StepStatus",
    "STEP_NAMES",
    "STEP_FLAG_FIELDS",
    "ONBOARDING_STEPS",
    "TOTAL_STEPS",
    "step_name",
    "is_valid_step",
    # Errors
    "OnboardingError",
    "RecordNotFoundError",
    "InvalidStepError",
    "StepValidationError",
    "VersionConflictError",
    "error_response",
    # Validation
    "StepValidationResult",
    "validate_step_payload",
    # Repository
    "OnboardingRepository",
    "get_onboarding_repository",
    "reset_onboarding_repository",
    # Service
    "OnboardingService",
    "StepUpdateResult",
    "build_progress_payload",
    "determine_current_step",
    # Completion
    "data_exists",
    "data_based_completion",
    # Consistency audit
    "IssueType",
    "Severity",
    "OverallStatus",
    "ConsistencyIssue",
    "ConsistencyReport",
    "AuditSummary",
    "AuditRun",
    "RepositoryProgressSource",
    "ProgressConsistencyAuditor",
    "STEP_DATA_PREDICATES",
]
