#!/usr/bin/env python3
"""
CLI for auditing onboarding progress consistency.

Usage:
    python -m reporting.cli check <record_id>
    python -m reporting.cli check --all [--pdf]

Examples:
    # Audit one record from the default data file
    python -m reporting.cli check VILLA-1a2b3c4d5e6f

    # Audit every record in a specific data file and write a PDF
    python -m reporting.cli check --all --data data/onboarding.json --pdf
"""

import argparse
import json
import sys
from pathlib import Path

from core.progress import (
    ConsistencyReport,
    OnboardingRepository,
    ProgressConsistencyAuditor,
    RecordNotFoundError,
    RepositoryProgressSource,
)
from utils.config import Config
from utils.logging import configure_logging

from .consistency_pdf import ConsistencyPdfSuccess, generate_consistency_report


def print_report(report: ConsistencyReport) -> None:
    """Print one record's audit result."""
    name = report.record_name or "Unnamed villa"
    print(f"{name} ({report.record_id}): {report.overall_status.value}")
    print(
        f"  issues: {report.total_issues} "
        f"(high {report.high_severity}, medium {report.medium_severity}, low {report.low_severity})"
    )
    for issue in report.issues:
        print(f"  - [{issue.severity.value.upper()}] step {issue.step} {issue.step_name}: {issue.issue_type.value}")
        print(f"      {issue.description}")
        print(f"      suggestion: {issue.suggestion}")


def _default_data_path() -> str:
    return str(Path(Config.load().data_dir) / "onboarding.json")


def cmd_check(args):
    """Audit one record or all records."""
    if not args.all and not args.record_id:
        print("Error: give a record ID or --all", file=sys.stderr)
        return 1

    repository = OnboardingRepository(args.data or _default_data_path())
    auditor = ProgressConsistencyAuditor(RepositoryProgressSource(repository))

    if not args.all:
        try:
            report = auditor.check_record(args.record_id)
        except RecordNotFoundError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        if args.json:
            print(json.dumps(report.to_dict(), indent=2))
        else:
            print_report(report)
        return 0

    try:
        run = auditor.check_all()
    except Exception as e:
        print(f"Error: could not enumerate records: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(run.to_dict(), indent=2))
    else:
        for report in run.reports:
            print_report(report)
        for record_id, error in run.failures.items():
            print(f"{record_id}: audit failed: {error}")
        summary = run.summary
        print()
        print(
            f"Audited {summary.total_records} records: {summary.consistent} consistent, "
            f"{summary.minor_issues} minor, {summary.major_issues} major, {summary.failed} failed"
        )

    if args.pdf:
        result = generate_consistency_report(run, Path(args.output_dir))
        if isinstance(result, ConsistencyPdfSuccess):
            print(f"Report generated: {result.path}")
        else:
            print(result.message)
    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Villa Onboarding - Progress Consistency Audit",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m reporting.cli check VILLA-1a2b3c4d5e6f
    python -m reporting.cli check --all --pdf

Output:
    PDF reports are saved to: reports/consistency-<timestamp>.pdf
        """,
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser(
        "check",
        help="Audit flags, step statuses and session counters",
    )
    check_parser.add_argument("record_id", nargs="?", help="Record to audit")
    check_parser.add_argument("--all", action="store_true", help="Audit every record")
    check_parser.add_argument("--data", help="Path to the onboarding JSON data file")
    check_parser.add_argument("--json", action="store_true", help="Print JSON instead of text")
    check_parser.add_argument("--pdf", action="store_true", help="Also write a PDF report (with --all)")
    check_parser.add_argument("--output-dir", default="reports", help="PDF output directory")
    check_parser.set_defaults(func=cmd_check)

    args = parser.parse_args(argv)
    configure_logging(args.debug)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
