"""
Reporting module for villa onboarding.

Renders progress consistency audits as text (CLI) and PDF.

Usage:
    from reporting import generate_consistency_report

    run = ProgressConsistencyAuditor(source).check_all()
    result = generate_consistency_report(run)
"""

from .consistency_pdf import (
    ConsistencyReportGenerator,
    ConsistencyPdfSuccess,
    ConsistencyPdfEmpty,
    ConsistencyPdfResult,
    generate_consistency_report,
)

__all__ = [
    "ConsistencyReportGenerator",
    "ConsistencyPdfSuccess",
    "ConsistencyPdfEmpty",
    "ConsistencyPdfResult",
    "generate_consistency_report",
]
