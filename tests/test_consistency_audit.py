"""
Tests for the Progress Consistency Audit

Tests covering:
1. The four per-step rules and their severities
2. The session counter check
3. Overall status derivation
4. Per-record failure isolation in check_all
5. The audit CLI and PDF output
"""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from core.progress import (
    IssueType,
    OnboardingRecord,
    OnboardingRepository,
    OnboardingService,
    OverallStatus,
    ProgressConsistencyAuditor,
    RecordNotFoundError,
    RepositoryProgressSource,
    Severity,
    StepStatus,
)
from reporting import ConsistencyReportGenerator
from reporting.cli import main as cli_main


COMPLETE_VILLA = {
    "address": "Jl. Pantai Berawa 12",
    "city": "Canggu",
    "country": "Indonesia",
    "bedrooms": 4,
    "bathrooms": 3,
}

COMPLETE_CONTRACT = {
    "contractStartDate": "2026-01-01",
    "contractType": "exclusive",
    "commissionRate": 20,
}


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def temp_persist_path():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield str(Path(tmpdir) / "onboarding.json")


@pytest.fixture
def repository(temp_persist_path):
    return OnboardingRepository(persist_path=temp_persist_path)


@pytest.fixture
def auditor(repository):
    return ProgressConsistencyAuditor(RepositoryProgressSource(repository))


def add_record(repository, **changes) -> OnboardingRecord:
    record = OnboardingRecord.create(changes.pop("property_name", "Villa Test"))
    for name, value in changes.items():
        setattr(record, name, value)
    repository.add(record)
    return record


# =============================================================================
# Per-Step Rules
# =============================================================================


class TestStepRules:
    """Data-exists, legacy flag and step status must agree."""

    def test_fresh_record_is_consistent(self, repository, auditor):
        record = add_record(repository)
        report = auditor.check_record(record.record_id)
        assert report.issues == ()
        assert report.overall_status == OverallStatus.CONSISTENT

    def test_contract_data_without_flag(self, repository, auditor):
        record = add_record(repository, contract=dict(COMPLETE_CONTRACT))
        record.step_progress[3] = StepStatus.COMPLETED
        record.session.steps_completed = 1

        report = auditor.check_record(record.record_id)

        flag_issues = [i for i in report.issues if i.issue_type == IssueType.DATA_EXISTS_FLAG_FALSE]
        assert len(flag_issues) == 1
        assert flag_issues[0].step == 3
        assert flag_issues[0].severity == Severity.HIGH
        # Every other step agrees in all three representations
        assert all(issue.step == 3 for issue in report.issues)
        assert report.total_issues == 1

    def test_villa_data_without_flag_but_completed_status(self, repository, auditor):
        record = add_record(repository, villa=dict(COMPLETE_VILLA))
        record.step_progress[1] = StepStatus.COMPLETED
        record.session.steps_completed = 1

        report = auditor.check_record(record.record_id)
        step_one = report.issues_for_step(1)

        assert [i.issue_type for i in step_one] == [IssueType.DATA_EXISTS_FLAG_FALSE]
        assert step_one[0].severity == Severity.HIGH
        assert report.overall_status == OverallStatus.MAJOR_ISSUES

    def test_flag_without_data(self, repository, auditor):
        record = add_record(repository)
        record.flags["bankDetailsCompleted"] = True

        report = auditor.check_record(record.record_id)

        assert len(report.issues) == 1
        assert report.issues[0].issue_type == IssueType.FLAG_TRUE_NO_DATA
        assert report.issues[0].severity == Severity.MEDIUM
        assert report.overall_status == OverallStatus.MINOR_ISSUES

    def test_data_with_incomplete_status(self, repository, auditor):
        record = add_record(repository, photos=[{"url": "pool.jpg"}])
        record.flags["photosUploaded"] = True
        record.step_progress[9] = StepStatus.IN_PROGRESS

        issues = auditor.check_record(record.record_id).issues_for_step(9)

        assert len(issues) == 1
        assert issues[0].issue_type == IssueType.STEP_STATUS_MISMATCH
        assert "IN_PROGRESS" in issues[0].description

    def test_completed_status_without_data(self, repository, auditor):
        record = add_record(repository)
        record.step_progress[8] = StepStatus.COMPLETED
        record.session.steps_completed = 1

        issues = auditor.check_record(record.record_id).issues_for_step(8)

        assert [i.issue_type for i in issues] == [IssueType.STEP_STATUS_MISMATCH]
        assert issues[0].description == "Step status is COMPLETED but no data exists"

    def test_inactive_rows_do_not_count_as_data(self, repository, auditor):
        record = add_record(repository, staff=[{"name": "Ketut", "isActive": False}])
        assert auditor.check_record(record.record_id).issues == ()

    def test_facilities_need_an_available_item(self, repository, auditor):
        record = add_record(repository, facilities=[{"name": "Pool", "isAvailable": False}])
        record.flags["facilitiesCompleted"] = True

        issues = auditor.check_record(record.record_id).issues_for_step(8)
        assert [i.issue_type for i in issues] == [IssueType.FLAG_TRUE_NO_DATA]


# =============================================================================
# Session Counter
# =============================================================================


class TestSessionCounter:
    def test_counter_mismatch_is_low_severity(self, repository, auditor):
        record = add_record(repository)
        record.session.steps_completed = 3

        report = auditor.check_record(record.record_id)

        assert len(report.issues) == 1
        issue = report.issues[0]
        assert issue.step == 0
        assert issue.step_name == "Session"
        assert issue.issue_type == IssueType.SESSION_COUNTER_MISMATCH
        assert issue.severity == Severity.LOW
        assert report.overall_status == OverallStatus.MINOR_ISSUES

    def test_missing_session_row_skips_check(self, repository, auditor):
        record = add_record(repository, session=None)
        assert auditor.check_record(record.record_id).issues == ()


# =============================================================================
# Audit Runs
# =============================================================================


class TestAuditRuns:
    def test_unknown_record(self, auditor):
        with pytest.raises(RecordNotFoundError):
            auditor.check_record("VILLA-NOPE")

    def test_predicate_error_counts_as_no_data(self, repository):
        def broken(record):
            raise RuntimeError("boom")

        record = add_record(repository)
        record.flags["villaInfoCompleted"] = True
        auditor = ProgressConsistencyAuditor(
            RepositoryProgressSource(repository),
            predicates={1: broken},
        )

        issues = auditor.check_record(record.record_id).issues_for_step(1)
        assert [i.issue_type for i in issues] == [IssueType.FLAG_TRUE_NO_DATA]

    def test_check_all_isolates_failures(self, repository):
        good = add_record(repository, property_name="Good")
        bad = add_record(repository, property_name="Bad")

        class FlakySource(RepositoryProgressSource):
            def legacy_flags(self, record_id):
                if record_id == bad.record_id:
                    raise RuntimeError("flags table unavailable")
                return super().legacy_flags(record_id)

        run = ProgressConsistencyAuditor(FlakySource(repository)).check_all()

        assert [r.record_id for r in run.reports] == [good.record_id]
        assert bad.record_id in run.failures
        assert run.summary.total_records == 1
        assert run.summary.failed == 1

    def test_check_all_propagates_enumeration_failure(self, repository):
        class BrokenSource(RepositoryProgressSource):
            def list_record_ids(self):
                raise RuntimeError("database offline")

        with pytest.raises(RuntimeError):
            ProgressConsistencyAuditor(BrokenSource(repository)).check_all()

    def test_records_written_through_the_service_are_consistent(self, repository, auditor):
        service = OnboardingService(repository)
        record = service.start_onboarding("Villa Service")
        service.update_step(record.record_id, 1, dict(COMPLETE_VILLA), version=0, completed=True)
        service.update_step(record.record_id, 3, dict(COMPLETE_CONTRACT), version=0, completed=True)

        report = auditor.check_record(record.record_id)
        assert report.overall_status == OverallStatus.CONSISTENT


# =============================================================================
# CLI and PDF
# =============================================================================


class TestAuditOutputs:
    def test_cli_single_record(self, repository, temp_persist_path, capsys):
        record = add_record(repository, villa=dict(COMPLETE_VILLA))
        repository.save(record)

        exit_code = cli_main(["check", record.record_id, "--data", temp_persist_path])

        assert exit_code == 0
        out = capsys.readouterr().out
        assert "MajorIssues" in out
        assert "DataExistsFlagFalse" in out

    def test_cli_unknown_record(self, repository, temp_persist_path):
        assert cli_main(["check", "VILLA-NOPE", "--data", temp_persist_path]) == 1

    def test_cli_all_prints_summary(self, repository, temp_persist_path, capsys):
        add_record(repository)
        add_record(repository)

        exit_code = cli_main(["check", "--all", "--data", temp_persist_path])

        assert exit_code == 0
        assert "Audited 2 records: 2 consistent" in capsys.readouterr().out

    def test_cli_requires_target(self, temp_persist_path):
        assert cli_main(["check", "--data", temp_persist_path]) == 1

    def test_pdf_is_generated(self, repository, auditor):
        add_record(repository, villa=dict(COMPLETE_VILLA))
        add_record(repository)

        pdf_bytes = ConsistencyReportGenerator().generate_to_buffer(auditor.check_all())
        assert pdf_bytes.startswith(b"%PDF")

    def test_pdf_written_to_output_dir(self, repository, auditor):
        add_record(repository)
        with tempfile.TemporaryDirectory() as tmpdir:
            result = ConsistencyReportGenerator(Path(tmpdir)).generate_report(auditor.check_all())
            assert result.path.exists()
            assert result.records_included == 1
