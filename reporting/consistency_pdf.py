"""
Progress Consistency Report - PDF Output

Renders an audit run (one or many records) as a printable PDF for the
operations team. Uses ReportLab, same as the rest of the reporting package.

Output Structure:
1. Title and run summary
2. Records with major issues first, then minor, then consistent
3. Per record: issue table (step, type, severity, description, suggestion)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import Union
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_LEFT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import (
    KeepTogether,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from core.progress import AuditRun, ConsistencyReport, OverallStatus, Severity
from utils.formatting import format_percent


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class ConsistencyPdfSuccess:
    """Returned when PDF generation succeeds."""
    path: Path
    records_included: int


@dataclass
class ConsistencyPdfEmpty:
    """Returned when the run has no reports to render."""
    message: str = "No records were audited; nothing to render."


ConsistencyPdfResult = Union[ConsistencyPdfSuccess, ConsistencyPdfEmpty]


# =============================================================================
# Color Palette
# =============================================================================


class Palette:
    """Print-friendly palette."""
    CHARCOAL = colors.Color(0.2, 0.2, 0.22)
    SLATE = colors.Color(0.35, 0.38, 0.42)
    GRAY = colors.Color(0.5, 0.5, 0.5)
    LIGHT_GRAY = colors.Color(0.85, 0.85, 0.85)
    PALE_GRAY = colors.Color(0.95, 0.95, 0.95)
    WHITE = colors.white

    HIGH = colors.Color(0.6, 0.15, 0.15)
    MEDIUM = colors.Color(0.5, 0.4, 0.15)
    LOW = colors.Color(0.35, 0.38, 0.42)
    CONSISTENT = colors.Color(0.15, 0.4, 0.25)


SEVERITY_COLORS = {
    Severity.HIGH: Palette.HIGH,
    Severity.MEDIUM: Palette.MEDIUM,
    Severity.LOW: Palette.LOW,
}

STATUS_ORDER = {
    OverallStatus.MAJOR_ISSUES: 0,
    OverallStatus.MINOR_ISSUES: 1,
    OverallStatus.CONSISTENT: 2,
}


def get_consistency_styles():
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(
        name='ReportTitle',
        parent=styles['Normal'],
        fontSize=18,
        leading=22,
        textColor=Palette.CHARCOAL,
        alignment=TA_LEFT,
        fontName='Helvetica-Bold',
        spaceAfter=6*mm,
    ))
    styles.add(ParagraphStyle(
        name='RecordTitle',
        parent=styles['Normal'],
        fontSize=12,
        leading=15,
        textColor=Palette.CHARCOAL,
        fontName='Helvetica-Bold',
        spaceBefore=14,
        spaceAfter=6,
    ))
    styles.add(ParagraphStyle(
        name='Meta',
        parent=styles['Normal'],
        fontSize=9,
        leading=12,
        textColor=Palette.SLATE,
        fontName='Helvetica',
    ))
    styles.add(ParagraphStyle(
        name='Cell',
        parent=styles['Normal'],
        fontSize=8,
        leading=10,
        textColor=Palette.CHARCOAL,
        fontName='Helvetica',
    ))
    return styles


# =============================================================================
# Generator
# =============================================================================


class ConsistencyReportGenerator:
    """
    Generates consistency audit PDFs.

    Usage:
        generator = ConsistencyReportGenerator()
        result = generator.generate_report(auditor.check_all())
    """

    PAGE_WIDTH, PAGE_HEIGHT = A4
    MARGIN_LEFT = 18*mm
    MARGIN_RIGHT = 18*mm
    MARGIN_TOP = 18*mm
    MARGIN_BOTTOM = 22*mm

    OUTPUT_DIR = Path("reports")

    def __init__(self, output_dir: Path = None):
        self.styles = get_consistency_styles()
        self.output_dir = Path(output_dir) if output_dir else self.OUTPUT_DIR

    def generate_report(self, run: AuditRun) -> ConsistencyPdfResult:
        if not run.reports and not run.failures:
            return ConsistencyPdfEmpty()

        self.output_dir.mkdir(parents=True, exist_ok=True)
        filename = f"consistency-{datetime.utcnow().strftime('%Y%m%d-%H%M%S')}.pdf"
        output_path = self.output_dir / filename
        output_path.write_bytes(self.generate_to_buffer(run))

        return ConsistencyPdfSuccess(path=output_path, records_included=len(run.reports))

    def generate_to_buffer(self, run: AuditRun) -> bytes:
        """Generate PDF and return as bytes (for testing or streaming)."""
        buffer = BytesIO()
        self._build_document(run, buffer)
        return buffer.getvalue()

    def _build_document(self, run: AuditRun, buffer: BytesIO):
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            leftMargin=self.MARGIN_LEFT,
            rightMargin=self.MARGIN_RIGHT,
            topMargin=self.MARGIN_TOP,
            bottomMargin=self.MARGIN_BOTTOM,
            title="Onboarding Progress Consistency Report",
            author="Villa Onboarding",
        )

        story = []
        story.extend(self._build_summary(run))

        ordered = sorted(
            run.reports,
            key=lambda r: (STATUS_ORDER[r.overall_status], r.record_id),
        )
        for report in ordered:
            story.extend(self._build_record(report))

        if run.failures:
            story.extend(self._build_failures(run))

        doc.build(story, onFirstPage=self._draw_page_frame, onLaterPages=self._draw_page_frame)

    def _draw_page_frame(self, canvas_obj: canvas.Canvas, doc):
        """Footer: title left, page number right."""
        canvas_obj.saveState()
        canvas_obj.setFont('Helvetica', 7)
        canvas_obj.setFillColor(Palette.GRAY)
        canvas_obj.drawString(
            self.MARGIN_LEFT,
            self.MARGIN_BOTTOM - 10*mm,
            "ONBOARDING CONSISTENCY",
        )
        canvas_obj.drawRightString(
            self.PAGE_WIDTH - self.MARGIN_RIGHT,
            self.MARGIN_BOTTOM - 10*mm,
            f"{doc.page}",
        )
        canvas_obj.restoreState()

    # =========================================================================
    # Sections
    # =========================================================================

    def _build_summary(self, run: AuditRun) -> list:
        summary = run.summary
        elements = [
            Paragraph("Onboarding Progress Consistency Report", self.styles['ReportTitle']),
            Paragraph(f"Generated {datetime.utcnow().strftime('%Y-%m-%d %H:%M')} UTC", self.styles['Meta']),
            Spacer(1, 8),
        ]

        consistent_share = (
            summary.consistent / summary.total_records * 100 if summary.total_records else 0.0
        )
        rows = [
            ["Records audited", str(summary.total_records)],
            ["Consistent", f"{summary.consistent} ({format_percent(consistent_share)})"],
            ["Minor issues", str(summary.minor_issues)],
            ["Major issues", str(summary.major_issues)],
            ["Audit failures", str(summary.failed)],
        ]
        table = Table(rows, colWidths=[50*mm, 40*mm])
        table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
            ('FONTNAME', (1, 0), (1, -1), 'Helvetica'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('TEXTCOLOR', (0, 0), (-1, -1), Palette.CHARCOAL),
            ('ROWBACKGROUNDS', (0, 0), (-1, -1), [Palette.WHITE, Palette.PALE_GRAY]),
            ('GRID', (0, 0), (-1, -1), 0.5, Palette.LIGHT_GRAY),
            ('TOPPADDING', (0, 0), (-1, -1), 2*mm),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 2*mm),
        ]))
        elements.append(table)
        return elements

    def _build_record(self, report: ConsistencyReport) -> list:
        name = report.record_name or "Unnamed villa"
        header = Paragraph(escape(f"{name} ({report.record_id})"), self.styles['RecordTitle'])
        status = Paragraph(
            f"Status: {report.overall_status.value} | high {report.high_severity}, "
            f"medium {report.medium_severity}, low {report.low_severity}",
            self.styles['Meta'],
        )

        if not report.issues:
            return [KeepTogether([header, status])]

        rows = [["Step", "Issue", "Severity", "Description", "Suggestion"]]
        for issue in report.issues:
            rows.append([
                f"{issue.step} {issue.step_name}",
                issue.issue_type.value,
                issue.severity.value.upper(),
                Paragraph(escape(issue.description), self.styles['Cell']),
                Paragraph(escape(issue.suggestion), self.styles['Cell']),
            ])

        table = Table(rows, colWidths=[30*mm, 32*mm, 16*mm, 48*mm, 48*mm], repeatRows=1)
        style = [
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTNAME', (0, 1), (-1, -1), 'Helvetica'),
            ('FONTSIZE', (0, 0), (-1, -1), 8),
            ('BACKGROUND', (0, 0), (-1, 0), Palette.CHARCOAL),
            ('TEXTCOLOR', (0, 0), (-1, 0), Palette.WHITE),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('GRID', (0, 0), (-1, -1), 0.5, Palette.LIGHT_GRAY),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [Palette.WHITE, Palette.PALE_GRAY]),
        ]
        for row, issue in enumerate(report.issues, start=1):
            style.append(('TEXTCOLOR', (2, row), (2, row), SEVERITY_COLORS[issue.severity]))
        table.setStyle(TableStyle(style))

        return [KeepTogether([header, status, Spacer(1, 4)]), table]

    def _build_failures(self, run: AuditRun) -> list:
        elements = [Paragraph("Records that could not be audited", self.styles['RecordTitle'])]
        for record_id, error in sorted(run.failures.items()):
            elements.append(Paragraph(escape(f"{record_id}: {error}"), self.styles['Meta']))
        return elements


def generate_consistency_report(run: AuditRun, output_dir: Path = None) -> ConsistencyPdfResult:
    """Primary entry point for consistency PDFs."""
    return ConsistencyReportGenerator(output_dir).generate_report(run)
