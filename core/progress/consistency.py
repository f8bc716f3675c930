"""
Progress Consistency Audit - Cross-Check of Three Progress Representations

Verifies that the three ways a record tracks step completion agree:
1. Legacy boolean flags on the record summary (e.g. villaInfoCompleted)
2. Per-step status rows (NOT_STARTED / IN_PROGRESS / COMPLETED)
3. Presence of the domain data itself (villa, owner, contract, rows...)

Rules, applied to each step independently (one step may raise several issues):
- data exists, flag false          -> DataExistsFlagFalse   (high)
- no data, flag true               -> FlagTrueNoData        (medium)
- data exists, status != COMPLETED -> StepStatusMismatch    (medium)
- no data, status == COMPLETED     -> StepStatusMismatch    (medium)
Record level:
- session.steps_completed != number of COMPLETED statuses -> SessionCounterMismatch (low)

The audit is read-only. It never repairs anything; every issue carries a
suggestion for an operator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from core.progress.completion import STEP_DATA_PREDICATES, DataExistsPredicate, data_exists
from core.progress.errors import RecordNotFoundError
from core.progress.repository import OnboardingRepository
from core.progress.schema import (
    ONBOARDING_STEPS,
    STEP_FLAG_FIELDS,
    OnboardingRecord,
    StepStatus,
    step_name,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================


class IssueType(Enum):
    """Kind of disagreement between progress representations."""

    DATA_EXISTS_FLAG_FALSE = "DataExistsFlagFalse"
    FLAG_TRUE_NO_DATA = "FlagTrueNoData"
    STEP_STATUS_MISMATCH = "StepStatusMismatch"
    SESSION_COUNTER_MISMATCH = "SessionCounterMismatch"


class Severity(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class OverallStatus(Enum):
    CONSISTENT = "Consistent"
    MINOR_ISSUES = "MinorIssues"
    MAJOR_ISSUES = "MajorIssues"


# =============================================================================
# Report Types
# =============================================================================


@dataclass(frozen=True)
class ConsistencyIssue:
    """One disagreement found for one step (or step 0 for the session row)."""

    record_id: str
    step: int
    step_name: str
    issue_type: IssueType
    severity: Severity
    description: str
    suggestion: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "step": self.step,
            "step_name": self.step_name,
            "issue_type": self.issue_type.value,
            "severity": self.severity.value,
            "description": self.description,
            "suggestion": self.suggestion,
        }


@dataclass(frozen=True)
class ConsistencyReport:
    """Audit result for one record."""

    record_id: str
    record_name: Optional[str]
    issues: tuple[ConsistencyIssue, ...]

    def _count(self, severity: Severity) -> int:
        return sum(1 for issue in self.issues if issue.severity == severity)

    @property
    def total_issues(self) -> int:
        return len(self.issues)

    @property
    def high_severity(self) -> int:
        return self._count(Severity.HIGH)

    @property
    def medium_severity(self) -> int:
        return self._count(Severity.MEDIUM)

    @property
    def low_severity(self) -> int:
        return self._count(Severity.LOW)

    @property
    def overall_status(self) -> OverallStatus:
        if self.high_severity > 0:
            return OverallStatus.MAJOR_ISSUES
        if self.issues:
            return OverallStatus.MINOR_ISSUES
        return OverallStatus.CONSISTENT

    def issues_for_step(self, step: int) -> list[ConsistencyIssue]:
        return [issue for issue in self.issues if issue.step == step]

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "record_name": self.record_name,
            "total_issues": self.total_issues,
            "high_severity": self.high_severity,
            "medium_severity": self.medium_severity,
            "low_severity": self.low_severity,
            "overall_status": self.overall_status.value,
            "issues": [issue.to_dict() for issue in self.issues],
        }


@dataclass(frozen=True)
class AuditSummary:
    """Counts across all audited records."""

    total_records: int
    consistent: int
    minor_issues: int
    major_issues: int
    failed: int

    def to_dict(self) -> dict[str, int]:
        return {
            "total_records": self.total_records,
            "consistent": self.consistent,
            "minor_issues": self.minor_issues,
            "major_issues": self.major_issues,
            "failed": self.failed,
        }


@dataclass
class AuditRun:
    """Result of auditing every record."""

    reports: list[ConsistencyReport] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def summary(self) -> AuditSummary:
        statuses = [r.overall_status for r in self.reports]
        return AuditSummary(
            total_records=len(self.reports),
            consistent=statuses.count(OverallStatus.CONSISTENT),
            minor_issues=statuses.count(OverallStatus.MINOR_ISSUES),
            major_issues=statuses.count(OverallStatus.MAJOR_ISSUES),
            failed=len(self.failures),
        )

    @property
    def major_reports(self) -> list[ConsistencyReport]:
        return [r for r in self.reports if r.overall_status == OverallStatus.MAJOR_ISSUES]

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "reports": [r.to_dict() for r in self.reports],
            "failures": dict(self.failures),
        }


# =============================================================================
# Progress Source
# =============================================================================


class RepositoryProgressSource:
    """
    Read paths the auditor needs, served from an OnboardingRepository.

    Each progress representation has its own accessor so the audit compares
    three independent reads rather than one derived view.
    """

    def __init__(self, repository: OnboardingRepository):
        self._repository = repository

    def _record(self, record_id: str) -> OnboardingRecord:
        record = self._repository.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    def list_record_ids(self) -> list[str]:
        return self._repository.list_ids()

    def record_name(self, record_id: str) -> Optional[str]:
        return self._record(record_id).property_name

    def domain_record(self, record_id: str) -> OnboardingRecord:
        return self._record(record_id)

    def legacy_flags(self, record_id: str) -> dict[str, bool]:
        return dict(self._record(record_id).flags)

    def step_statuses(self, record_id: str) -> dict[int, StepStatus]:
        return dict(self._record(record_id).step_progress)

    def session_steps_completed(self, record_id: str) -> Optional[int]:
        session = self._record(record_id).session
        return session.steps_completed if session else None


# =============================================================================
# Auditor
# =============================================================================


class ProgressConsistencyAuditor:
    """
    Read-only consistency checker for onboarding progress.

    Usage:
        auditor = ProgressConsistencyAuditor(RepositoryProgressSource(repo))
        report = auditor.check_record(record_id)
        run = auditor.check_all()
    """

    def __init__(
        self,
        source: RepositoryProgressSource,
        predicates: Optional[dict[int, DataExistsPredicate]] = None,
    ):
        self._source = source
        self._predicates = dict(predicates or STEP_DATA_PREDICATES)

    def _data_exists(self, record: OnboardingRecord, step: int) -> bool:
        return data_exists(record, step, self._predicates)

    def check_record(self, record_id: str) -> ConsistencyReport:
        """
        Audit one record.

        Raises:
            RecordNotFoundError: If the record does not exist
        """
        record = self._source.domain_record(record_id)
        flags = self._source.legacy_flags(record_id)
        statuses = self._source.step_statuses(record_id)
        session_completed = self._source.session_steps_completed(record_id)

        issues: list[ConsistencyIssue] = []

        for step in ONBOARDING_STEPS:
            name = step_name(step)
            flag_field = STEP_FLAG_FIELDS[step]
            has_data = self._data_exists(record, step)
            legacy_flag = bool(flags.get(flag_field, False))
            status = statuses.get(step, StepStatus.NOT_STARTED)
            step_complete = status == StepStatus.COMPLETED

            def issue(issue_type: IssueType, severity: Severity, description: str, suggestion: str) -> None:
                issues.append(ConsistencyIssue(
                    record_id=record_id,
                    step=step,
                    step_name=name,
                    issue_type=issue_type,
                    severity=severity,
                    description=description,
                    suggestion=suggestion,
                ))

            if has_data and not legacy_flag:
                issue(
                    IssueType.DATA_EXISTS_FLAG_FALSE,
                    Severity.HIGH,
                    f"{name} has data in database, but progress flag {flag_field} is false",
                    f"Update progress flag {flag_field} to true",
                )

            if not has_data and legacy_flag:
                issue(
                    IssueType.FLAG_TRUE_NO_DATA,
                    Severity.MEDIUM,
                    f"Progress flag {flag_field} is true, but no data exists in database",
                    f"Either add missing data or set progress flag {flag_field} to false",
                )

            if has_data and not step_complete:
                issue(
                    IssueType.STEP_STATUS_MISMATCH,
                    Severity.MEDIUM,
                    f"{name} has data but step status is {status.value}",
                    "Update step status to COMPLETED",
                )

            if not has_data and step_complete:
                issue(
                    IssueType.STEP_STATUS_MISMATCH,
                    Severity.MEDIUM,
                    "Step status is COMPLETED but no data exists",
                    "Update step status to NOT_STARTED or IN_PROGRESS",
                )

        if session_completed is not None:
            actual = sum(1 for status in statuses.values() if status == StepStatus.COMPLETED)
            if session_completed != actual:
                issues.append(ConsistencyIssue(
                    record_id=record_id,
                    step=0,
                    step_name="Session",
                    issue_type=IssueType.SESSION_COUNTER_MISMATCH,
                    severity=Severity.LOW,
                    description=(
                        f"Session steps_completed ({session_completed}) doesn't match "
                        f"actual count ({actual})"
                    ),
                    suggestion="Recalculate the session counters from the step statuses",
                ))

        return ConsistencyReport(
            record_id=record_id,
            record_name=self._source.record_name(record_id),
            issues=tuple(issues),
        )

    def check_all(self) -> AuditRun:
        """
        Audit every record.

        A failure on one record is logged and recorded; the run continues.
        Failure to enumerate records propagates to the caller.
        """
        record_ids = self._source.list_record_ids()
        logger.info("Checking consistency for %d records...", len(record_ids))

        run = AuditRun()
        for record_id in record_ids:
            try:
                report = self.check_record(record_id)
            except Exception as e:
                logger.error("Failed to check record %s: %s", record_id, e)
                run.failures[record_id] = str(e)
                continue

            run.reports.append(report)
            if report.overall_status != OverallStatus.CONSISTENT:
                logger.warning(
                    "Record %s: %d issues found (%d high, %d medium, %d low)",
                    record_id,
                    report.total_issues,
                    report.high_severity,
                    report.medium_severity,
                    report.low_severity,
                )
        return run
