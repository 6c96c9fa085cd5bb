"""
pdf_generator.py — Astroline PDF report renderer.

Builds the unlocked FullReport as an A4 PDF using reportlab PLATYPUS.
Output is a BytesIO buffer (no temp file on disk).

Entry point:
    generate_report_pdf(report) -> BytesIO

CRITICAL: buffer.seek(0) is called after doc.build(story). reportlab leaves
the buffer at end-of-write; without seek(0) the response body is empty.

Sections:
  1. Header (title, sun sign, date)
  2. Natal chart table (sun / moon / rising)
  3. Numerology
  4. Personality traits
  5. Quarterly forecast
  6. Love & compatibility table
  7. Career & finance
  8. Palm reading (when present)
  9. Lucky attributes
 10. Disclaimer footer (8pt)

All model-written text is XML-escaped before it reaches Paragraph markup.
"""
from __future__ import annotations

import datetime
import logging
from io import BytesIO
from typing import Union
from xml.sax.saxutils import escape

from reportlab.lib.colors import HexColor, black, white
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import (
    KeepTogether,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from astroline.agents.report_agent.schemas import FullReport, UnknownSign, ZodiacSign

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Colour constants
# ---------------------------------------------------------------------------

VIOLET_LIGHT = HexColor("#EDE7F6")   # Table headers, callouts
GREY_LIGHT = HexColor("#F2F2F2")     # Alternating rows

UNKNOWN_REASON_TEXT = {
    "no_birth_time": "Unknown (birth time not provided)",
    "no_birth_place": "Unknown (birth place not provided)",
    "not_computed": "Unknown",
}


def _p(text: str, style: ParagraphStyle) -> Paragraph:
    return Paragraph(escape(text or ""), style)


def _sign_label(sign: Union[ZodiacSign, UnknownSign]) -> str:
    if isinstance(sign, UnknownSign):
        return UNKNOWN_REASON_TEXT[sign.reason]
    return f"{sign.name} ({sign.element}, {sign.modality}, ruled by {sign.ruling_planet})"


def _bullets(items: list[str], style: ParagraphStyle) -> list[Paragraph]:
    return [_p(f"• {item}", style) for item in items]


def _build_chart_table(report: FullReport) -> Table:
    chart = report.natal_chart
    data = [
        ["Placement", "Sign"],
        ["Sun", _sign_label(chart.sun_sign)],
        ["Moon", _sign_label(chart.moon_sign)],
        ["Rising", _sign_label(chart.rising_sign)],
    ]
    t = Table(data, colWidths=[35 * mm, 135 * mm])
    t.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), VIOLET_LIGHT),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("GRID", (0, 0), (-1, -1), 0.5, black),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]))
    return t


def _build_matches_table(report: FullReport) -> Table:
    data = [["Sign", "Match", "Why"]]
    cell_style = getSampleStyleSheet()["BodyText"]
    for match in report.love.top_matches:
        data.append([match.sign, f"{match.percentage}%", _p(match.description, cell_style)])
    t = Table(data, colWidths=[30 * mm, 20 * mm, 120 * mm])
    t.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), VIOLET_LIGHT),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("GRID", (0, 0), (-1, -1), 0.5, black),
        ("ALIGN", (1, 1), (1, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [white, GREY_LIGHT]),
    ]))
    return t


def generate_report_pdf(report: FullReport) -> BytesIO:
    """
    Render a full report (premium sections included) to PDF.

    Callers must check report.is_paid first; this function does not gate.

    Returns:
        BytesIO buffer at position 0, ready for StreamingResponse or an attachment.
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=20 * mm,
        rightMargin=20 * mm,
        topMargin=20 * mm,
        bottomMargin=20 * mm,
        title="Astroline — Personal Astrology Report",
    )

    styles = getSampleStyleSheet()
    normal = styles["Normal"]
    story = []

    # 1. Header
    title_style = ParagraphStyle(
        "report_title",
        parent=styles["Heading1"],
        fontSize=18,
        fontName="Helvetica-Bold",
    )
    sun = report.natal_chart.sun_sign
    story.append(Paragraph("Astroline — Personal Astrology Report", title_style))
    story.append(Spacer(1, 2 * mm))
    story.append(_p(f"Sun sign: {sun.name}", normal))
    story.append(_p(f"Birth date: {report.user_data.birth_date}", normal))
    story.append(_p(f"Report generated: {datetime.date.today().strftime('%d %B %Y')}", normal))
    story.append(Spacer(1, 6 * mm))

    # 2. Natal chart
    story.append(KeepTogether([
        Paragraph("Natal Chart", styles["Heading2"]),
        Spacer(1, 2 * mm),
        _build_chart_table(report),
    ]))
    story.append(Spacer(1, 3 * mm))
    story.append(_p(report.natal_chart.sun_description, normal))
    for description in (report.natal_chart.moon_description, report.natal_chart.rising_description):
        if description:
            story.append(Spacer(1, 2 * mm))
            story.append(_p(description, normal))
    story.append(Spacer(1, 6 * mm))

    # 3. Numerology
    if report.numerology is not None:
        num = report.numerology
        story.append(Paragraph("Numerology", styles["Heading2"]))
        story.append(_p(f"Life path {num.life_path_number}: {num.life_path_meaning}", normal))
        story.append(_p(f"Birthday number {num.birthday_number}: {num.birthday_meaning}", normal))
        story.append(_p(f"Personal year {num.personal_year}: {num.personal_year_meaning}", normal))
        story.append(Spacer(1, 6 * mm))

    # 4. Personality
    story.append(Paragraph("Personality", styles["Heading2"]))
    for trait in report.personality:
        story.append(_p(f"{trait.title} ({trait.strength}%): {trait.description}", normal))
    story.append(Spacer(1, 6 * mm))

    # 5. Forecast
    story.append(Paragraph("Your Year Ahead", styles["Heading2"]))
    for quarter in report.forecast:
        block = [
            _p(f"{quarter.quarter} — {quarter.title}", styles["Heading3"]),
            _p(quarter.description, normal),
        ]
        if quarter.focus:
            block.append(_p(f"Focus: {', '.join(quarter.focus)}", normal))
        if quarter.lucky_days:
            block.append(_p(f"Lucky days: {', '.join(quarter.lucky_days)}", normal))
        story.append(KeepTogether(block))
    story.append(Spacer(1, 6 * mm))

    # 6. Love
    story.append(_p("Love & Relationships", styles["Heading2"]))
    story.append(_p(report.love.overview, normal))
    story.append(Paragraph("Strengths", styles["Heading3"]))
    story.extend(_bullets(report.love.strengths, normal))
    story.append(Paragraph("Challenges", styles["Heading3"]))
    story.extend(_bullets(report.love.challenges, normal))
    story.append(Spacer(1, 2 * mm))
    story.append(_p(report.love.advice, normal))
    story.append(Spacer(1, 3 * mm))
    story.append(_build_matches_table(report))
    story.append(Spacer(1, 6 * mm))

    # 7. Career
    story.append(_p("Career & Finance", styles["Heading2"]))
    story.append(_p(report.career.overview, normal))
    story.append(Paragraph("Ideal careers", styles["Heading3"]))
    story.extend(_bullets(report.career.ideal_careers, normal))
    story.append(Paragraph("Finance tips", styles["Heading3"]))
    story.extend(_bullets(report.career.finance_tips, normal))
    story.append(Spacer(1, 2 * mm))
    story.append(_p(report.career.year_focus, normal))
    story.append(Spacer(1, 6 * mm))

    # 8. Palm reading
    if report.palm_reading is not None:
        palm = report.palm_reading
        story.append(Paragraph("Palm Reading", styles["Heading2"]))
        story.append(_p(f"Life line: {palm.life_line_interpretation}", normal))
        story.append(_p(f"Heart line: {palm.heart_line_interpretation}", normal))
        story.append(_p(f"Head line: {palm.head_line_interpretation}", normal))
        story.append(Spacer(1, 6 * mm))

    # 9. Lucky attributes
    lucky = report.lucky
    story.append(Paragraph("Lucky Attributes", styles["Heading2"]))
    story.append(_p(f"Numbers: {', '.join(str(n) for n in lucky.numbers)}", normal))
    story.append(_p(f"Days: {', '.join(lucky.days)}", normal))
    story.append(_p(f"Colours: {', '.join(lucky.colors)}", normal))
    story.append(_p(f"Gems: {', '.join(lucky.gems)}", normal))
    story.append(_p(f"Direction: {lucky.direction}", normal))

    # 10. Disclaimer
    disclaimer_style = ParagraphStyle(
        "disclaimer",
        parent=normal,
        fontSize=8,
        textColor=black,
    )
    story.append(Spacer(1, 10 * mm))
    story.append(Paragraph(
        "This report is provided for entertainment and self-reflection. "
        "It is not a substitute for professional medical, legal or financial advice.",
        disclaimer_style,
    ))

    doc.build(story)
    buffer.seek(0)  # MANDATORY: reset position before the caller reads

    logger.info("PDF report generated report_id=%s", report.id)
    return buffer
