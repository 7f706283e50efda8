"""
Printable plan export.

Renders a Plan (and its cache metadata) to a PDF with ReportLab: score and
summary first, then priorities, warnings, sections, synergies, the three action
horizons and the tools still worth using.
"""

import io
import re
from datetime import datetime
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT, TA_RIGHT
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from plan import Plan, parse_iso

NAVY = "#1D3557"
STEEL = "#457B9D"

SEVERITY_COLORS = {
    "critical": "#E63946",
    "warning": "#F4A261",
    "info": STEEL,
}


def sanitize_pdf_text(s) -> str:
    """ASCII-only, XML-escaped text safe for a ReportLab Paragraph."""
    if s is None:
        return ""
    t = str(s)
    t = (t.replace("•", "-")
           .replace("–", "-")
           .replace("—", "-")
           .replace("×", "x")
           .replace("“", '"')
           .replace("”", '"')
           .replace("’", "'")
           .replace("‘", "'")
           .replace("≈", "~"))
    t = re.sub(r"[^\t\n\r -~]", "", t)
    # Soft-break very long unbroken tokens so they wrap
    t = re.sub(r"([A-Za-z0-9:/\.\-_]{30})(?=[A-Za-z0-9:/\.\-_])", r"\1 ", t)
    t = re.sub(r"\s+", " ", t).strip()
    return t.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


# Overrides applied on top of ReportLab's sample sheet
BASE_STYLE_OVERRIDES = {
    'Title': {'fontSize': 22, 'alignment': TA_CENTER, 'spaceAfter': 18, 'textColor': colors.HexColor(NAVY)},
    'h1': {'fontSize': 15, 'leading': 20, 'spaceBefore': 8, 'spaceAfter': 10, 'textColor': colors.HexColor(STEEL)},
    'h2': {'fontSize': 11, 'leading': 16, 'spaceBefore': 8, 'spaceAfter': 4, 'textColor': colors.HexColor(NAVY)},
    'BodyText': {'fontSize': 10, 'leading': 14, 'spaceAfter': 5},
}


def get_plan_styles():
    styles = getSampleStyleSheet()
    for name, overrides in BASE_STYLE_OVERRIDES.items():
        for attr, value in overrides.items():
            setattr(styles[name], attr, value)
    for extra in (
        ParagraphStyle(name='Header', fontSize=8, alignment=TA_RIGHT, textColor=colors.grey),
        ParagraphStyle(name='Footer', fontSize=8, alignment=TA_CENTER, textColor=colors.grey),
        ParagraphStyle(name='TableHead', fontSize=9, fontName='Helvetica-Bold', alignment=TA_LEFT, textColor=colors.white),
        ParagraphStyle(name='TableCell', fontSize=9, leading=12, alignment=TA_LEFT),
        ParagraphStyle(name='Score', fontSize=28, leading=34, alignment=TA_CENTER, textColor=colors.HexColor(NAVY)),
    ):
        styles.add(extra)
    return styles


def _draw_line(canvas, doc, text, style, y_from_top):
    para = Paragraph(text, style)
    _, height = para.wrap(doc.width, doc.topMargin)
    y = doc.height + doc.topMargin - height if y_from_top else height
    para.drawOn(canvas, doc.leftMargin, y)


def _page_chrome(canvas, doc):
    """Running header (print time) and page-number footer."""
    styles = get_plan_styles()
    canvas.saveState()
    printed = datetime.now().strftime('%Y-%m-%d %H:%M')
    _draw_line(canvas, doc, f"RetireWise Unified Retirement Plan - Printed {printed}", styles['Header'], True)
    _draw_line(canvas, doc, f"Page {doc.page}", styles['Footer'], False)
    canvas.restoreState()


def _bullets(story, items, styles):
    for item in items:
        story.append(Paragraph(f"- {sanitize_pdf_text(item)}", styles["BodyText"]))


def _table(story, header, rows, doc, styles, head_color=STEEL):
    data = [[Paragraph(sanitize_pdf_text(h), styles['TableHead']) for h in header]]
    for row in rows:
        data.append([Paragraph(sanitize_pdf_text(c), styles['TableCell']) for c in row])
    col_widths = [doc.width / len(header)] * len(header)
    table = Table(data, hAlign='LEFT', repeatRows=1, colWidths=col_widths)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor(head_color)),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 8),
        ('TOPPADDING', (0, 0), (-1, 0), 8),
        ('LEFTPADDING', (0, 0), (-1, -1), 6),
        ('RIGHTPADDING', (0, 0), (-1, -1), 6),
    ]))
    story.append(table)
    story.append(Spacer(1, 12))


def _format_timestamp(value: Optional[str]) -> str:
    dt = parse_iso(value)
    return dt.strftime("%B %d, %Y %H:%M UTC") if dt else (value or "")


def render_plan_pdf(plan: Plan, cached_at: Optional[str] = None, tier_used: Optional[str] = None) -> bytes:
    buf = io.BytesIO()
    doc = SimpleDocTemplate(buf, pagesize=letter,
                            rightMargin=inch * 0.75, leftMargin=inch * 0.75,
                            topMargin=inch, bottomMargin=inch,
                            title="Unified Retirement Plan")
    styles = get_plan_styles()
    story = [Paragraph("Unified Retirement Plan", styles['Title'])]

    meta = [f"Generated {_format_timestamp(plan.generated_at)}", f"Model: {plan.model_used}"]
    if tier_used:
        meta.append(f"Tier: {tier_used}")
    if cached_at:
        meta.append(f"Cached {_format_timestamp(cached_at)}")
    story.append(Paragraph(sanitize_pdf_text(" | ".join(meta)), styles["Header"]))
    story.append(Spacer(1, 0.2 * inch))

    story.append(Paragraph(f"{plan.retirement_readiness_score}/100", styles['Score']))
    story.append(Paragraph(
        sanitize_pdf_text(
            f"Retirement readiness score. Data completeness {plan.data_completeness}% "
            f"across {len(plan.tools_analyzed)} tools."
        ),
        styles["BodyText"],
    ))
    story.append(Spacer(1, 0.15 * inch))

    story.append(Paragraph("Executive Summary", styles['h1']))
    story.append(Paragraph(sanitize_pdf_text(plan.executive_summary), styles["BodyText"]))

    if plan.top_priorities:
        story.append(Paragraph("Top Priorities", styles['h1']))
        for i, priority in enumerate(plan.top_priorities, start=1):
            story.append(Paragraph(f"{i}. {sanitize_pdf_text(priority)}", styles["BodyText"]))

    if plan.warnings:
        story.append(Paragraph("Warnings", styles['h1']))
        for warning in plan.warnings:
            color = SEVERITY_COLORS.get(warning.severity, SEVERITY_COLORS["info"])
            story.append(Paragraph(
                f'<font color="{color}"><b>[{warning.severity.upper()}]</b></font> '
                f'<b>{sanitize_pdf_text(warning.title)}</b>',
                styles["BodyText"],
            ))
            if warning.description:
                story.append(Paragraph(sanitize_pdf_text(warning.description), styles["BodyText"]))
            if warning.action_required:
                story.append(Paragraph(f"<i>Action:</i> {sanitize_pdf_text(warning.action_required)}", styles["BodyText"]))

    for section in plan.sections:
        story.append(Paragraph(sanitize_pdf_text(section.title), styles['h1']))
        story.append(Paragraph(
            sanitize_pdf_text(f"Priority: {section.priority} | Confidence: {section.confidence}"),
            styles["Header"],
        ))
        if section.summary:
            story.append(Paragraph(sanitize_pdf_text(section.summary), styles["BodyText"]))
        if section.details:
            story.append(Paragraph("Key Findings", styles['h2']))
            _bullets(story, section.details, styles)
        if section.recommendations:
            story.append(Paragraph("Recommendations", styles['h2']))
            _bullets(story, section.recommendations, styles)

    if plan.synergies:
        story.append(Paragraph("Cross-Tool Synergies", styles['h1']))
        _table(
            story,
            ["Synergy", "Description", "Tools", "Potential Impact"],
            [[s.title, s.description, ", ".join(s.tools), s.potential_impact] for s in plan.synergies],
            doc, styles,
        )

    horizons = [
        ("Immediate Actions", plan.immediate_actions),
        ("Next 1-6 Months", plan.short_term_actions),
        ("6+ Months", plan.long_term_actions),
    ]
    if any(items for _, items in horizons):
        story.append(Paragraph("Action Plan", styles['h1']))
        for title, items in horizons:
            if items:
                story.append(Paragraph(title, styles['h2']))
                _bullets(story, items, styles)

    if plan.missing_data_suggestions:
        story.append(Paragraph("Improve Your Plan", styles['h1']))
        _table(
            story,
            ["Tool", "Why it helps"],
            [[m.tool or m.tool_id, m.reason] for m in plan.missing_data_suggestions],
            doc, styles, head_color=NAVY,
        )

    story.append(Spacer(1, 12))
    story.append(Paragraph("Disclaimers", styles["h2"]))
    for d in (
        "Generated from your planning tool data by an AI model; not a substitute for professional advice.",
        "Tax rules, market conditions and personal circumstances change; regenerate after updating your tools.",
    ):
        story.append(Paragraph(f"- {d}", styles["BodyText"]))

    doc.build(story, onFirstPage=_page_chrome, onLaterPages=_page_chrome)
    return buf.getvalue()
