from datetime import date
from io import BytesIO
from xml.sax.saxutils import escape
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from schoollink.config import settings
from schoollink.schemas.report_cards import ReportCardData, ReportColumns
from schoollink.services.report_cards import REPORT_COLUMNS, score_color, PASS_COLOR, FAIL_COLOR

HEADERS = ["Subject", "P1", "P2", "P3", "Exam", "Sem 1", "P4", "P5", "P6", "Exam", "Sem 2", "Yearly"]
COLUMN_WIDTHS = [150, 42, 42, 42, 42, 52, 42, 42, 42, 42, 52, 52]
SCORE_DECIMALS = 1
BOLD_COLUMNS = ("sem1_average", "sem2_average", "yearly_average")

TEXT_COLORS = {
    PASS_COLOR: colors.HexColor("#0066CC"),
    FAIL_COLOR: colors.HexColor("#CC0000"),
}
HEADER_BACKGROUND = colors.HexColor("#E0E0E0")
AVERAGES_BACKGROUND = colors.HexColor("#F5F5F5")


def format_score(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value:.{SCORE_DECIMALS}f}"


def text_color(value: Optional[float]):
    """Color of a cell, judged on the value as printed."""
    shown = None if value is None else round(value, SCORE_DECIMALS)
    return TEXT_COLORS.get(score_color(shown), colors.black)


def _score_cells(columns: ReportColumns):
    return [format_score(getattr(columns, column)) for column in REPORT_COLUMNS]


def _color_commands(row_index: int, columns: ReportColumns, bold_all: bool = False):
    commands = []
    for offset, column in enumerate(REPORT_COLUMNS, start=1):
        value = getattr(columns, column)
        commands.append(("TEXTCOLOR", (offset, row_index), (offset, row_index), text_color(value)))
        if bold_all or column in BOLD_COLUMNS:
            commands.append(("FONTNAME", (offset, row_index), (offset, row_index), "Helvetica-Bold"))
    return commands


def render_report_card_pdf(report: ReportCardData) -> bytes:
    """
    Render an assembled report card as a PDF document.

    Pass scores are blue, fail scores red and empty cells a black dash.
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        rightMargin=30,
        leftMargin=30,
        topMargin=30,
        bottomMargin=30,
        title=f"Report card {report.student.student_number}",
    )

    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(
        name="CenterBold",
        alignment=1,
        fontSize=16,
        spaceAfter=6,
        leading=20,
        fontName="Helvetica-Bold",
    ))
    styles.add(ParagraphStyle(name="CenterSmall", alignment=1, fontSize=9, leading=12))

    school = report.school
    student = report.student
    elements = [
        Paragraph(escape(school.name), styles["CenterBold"]),
        Paragraph(escape(school.address or ""), styles["CenterSmall"]),
        Paragraph(
            f"Phone: {escape(school.phone or 'N/A')} | Email: {escape(school.email or 'N/A')}",
            styles["CenterSmall"],
        ),
        Spacer(1, 10),
        Paragraph("STUDENT REPORT CARD", styles["CenterBold"]),
        Paragraph(f"Academic Year: {escape(report.academic_year.year_name)}", styles["CenterSmall"]),
        Spacer(1, 12),
    ]

    info_table = Table(
        [
            ["Name", f"{student.first_name} {student.last_name}", "Student ID", student.student_number],
            ["Class", student.class_name or "N/A", "Gender", student.gender or "N/A"],
        ],
        colWidths=[80, 200, 80, 200],
    )
    info_table.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("FONTNAME", (2, 0), (2, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
    ]))
    elements.extend([info_table, Spacer(1, 12)])

    table_data = [HEADERS]
    style_commands = [
        ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
        ("BACKGROUND", (0, 0), (-1, 0), HEADER_BACKGROUND),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("ALIGN", (1, 0), (-1, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
    ]

    for subject in report.subjects:
        table_data.append([subject.subject_name] + _score_cells(subject))
        style_commands.extend(_color_commands(len(table_data) - 1, subject))

    table_data.append(["Period Averages"] + _score_cells(report.period_averages))
    averages_row = len(table_data) - 1
    style_commands.extend([
        ("BACKGROUND", (0, averages_row), (-1, averages_row), AVERAGES_BACKGROUND),
        ("FONTNAME", (0, averages_row), (0, averages_row), "Helvetica-Bold"),
    ])
    style_commands.extend(_color_commands(averages_row, report.period_averages, bold_all=True))

    grades_table = Table(table_data, colWidths=COLUMN_WIDTHS, repeatRows=1)
    grades_table.setStyle(TableStyle(style_commands))
    elements.extend([grades_table, Spacer(1, 14)])

    pass_mark = int(settings.PASS_MARK)
    elements.extend([
        Paragraph("<b>Grading Scale:</b>", styles["Normal"]),
        Paragraph(f'<font color="#0066CC">Blue = PASS ({pass_mark}-100)</font>', styles["Normal"]),
        Paragraph(f'<font color="#CC0000">Red = FAIL (0-{pass_mark - 1})</font>', styles["Normal"]),
        Spacer(1, 30),
    ])

    signatures = Table(
        [["_____________________", "", "_____________________"], ["Class Teacher", "", "Principal"]],
        colWidths=[200, 160, 200],
    )
    signatures.setStyle(TableStyle([("ALIGN", (0, 0), (-1, -1), "CENTER"), ("FONTSIZE", (0, 0), (-1, -1), 9)]))
    elements.extend([
        signatures,
        Spacer(1, 16),
        Paragraph(f"Generated on {date.today().isoformat()}", styles["CenterSmall"]),
    ])

    doc.build(elements)
    pdf_bytes = buffer.getvalue()
    buffer.close()
    return pdf_bytes
