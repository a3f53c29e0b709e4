"""
services/report_service.py
--------------------------
Report Service — paints a report layout (services/report_layout.py) onto
PDF pages with ReportLab and returns the finished file.

The canvas runs in invariant mode, so identical inputs (including the
generation timestamp) give byte-identical PDFs.

Fonts: Poppins-Regular / Poppins-Bold / Poppins-Medium are registered from
the configured fonts directory when present; otherwise the built-in
Helvetica family is used.

Logo: drawn from the configured PNG when it loads; a missing or unreadable
file falls back to a solid green "SOILY" box, and the report is still built.

Usage:
    from services.report_service import render_single_report
    report = render_single_report(analysis, farmer, generated_at=now,
                                  logo_path="static/logo1.png")
    report.content[:4] == b"%PDF"
"""

from __future__ import annotations

import io
import logging
import os
from dataclasses import dataclass
from datetime import datetime

from reportlab.lib import colors
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont, TTFError
from reportlab.pdfgen import canvas

from services.report_layout import (
    PAGE_WIDTH, PAGE_HEIGHT, MARGIN, CONTENT_WIDTH,
    PRIMARY, LIGHT_GREEN, DARK_GREEN, TEXT_DARK, TEXT_LIGHT, BORDER, ROW_ALT,
    TABLE_TITLE, TABLE_ROW,
    ReportLayout, Page, Section,
    build_single_layout, build_multi_layout,
)
from services.schemas import Farmer, SoilAnalysis

logger = logging.getLogger(__name__)

PDF_MIMETYPE = "application/pdf"

_HELVETICA: dict[str, str] = {
    "normal": "Helvetica",
    "bold":   "Helvetica-Bold",
    "medium": "Helvetica",
}
_POPPINS_FILES: dict[str, str] = {
    "normal": "Poppins-Regular.ttf",
    "bold":   "Poppins-Bold.ttf",
    "medium": "Poppins-Medium.ttf",
}


@dataclass
class ReportFile:
    content:  bytes
    filename: str
    mimetype: str = PDF_MIMETYPE


def register_fonts(fonts_dir: str | None) -> dict[str, str]:
    """
    Register Poppins from fonts_dir when regular + bold are both present.
    Returns the face name to use for 'normal', 'bold' and 'medium'.
    """
    if not fonts_dir:
        return dict(_HELVETICA)
    regular = os.path.join(fonts_dir, _POPPINS_FILES["normal"])
    bold    = os.path.join(fonts_dir, _POPPINS_FILES["bold"])
    if not (os.path.isfile(regular) and os.path.isfile(bold)):
        return dict(_HELVETICA)

    fonts = dict(_HELVETICA)
    try:
        for style, filename in _POPPINS_FILES.items():
            path = os.path.join(fonts_dir, filename)
            if not os.path.isfile(path):
                continue
            face = os.path.splitext(filename)[0]
            if face not in pdfmetrics.getRegisteredFontNames():
                pdfmetrics.registerFont(TTFont(face, path))
            fonts[style] = face
    except (TTFError, OSError) as exc:
        logger.warning("Poppins fonts unusable (%s); using Helvetica", exc)
        return dict(_HELVETICA)
    if fonts["medium"] == _HELVETICA["medium"]:
        fonts["medium"] = fonts["normal"]
    return fonts


def load_logo(logo_path: str | None) -> ImageReader | None:
    if not logo_path:
        return None
    if not os.path.isfile(logo_path):
        logger.warning("Report logo %s not found; drawing placeholder", logo_path)
        return None
    try:
        logo = ImageReader(logo_path)
        # PIL decodes lazily; force the full read so truncated files fail here
        logo.getRGBData()
        return logo
    except (OSError, ValueError) as exc:
        logger.warning("Report logo %s not loaded (%s); drawing placeholder",
                       logo_path, exc)
        return None


# ─────────────────────────────────────────────────────────────────────────────
# Painter
# ─────────────────────────────────────────────────────────────────────────────

class _Painter:
    """Draws layout sections. Layout y runs downward; ReportLab's runs up."""

    def __init__(self, pdf: canvas.Canvas, fonts: dict[str, str],
                 logo: ImageReader | None):
        self.pdf   = pdf
        self.fonts = fonts
        self.logo  = logo

    # ── primitives ───────────────────────────────────────────────────────
    def _fill(self, hex_color: str):
        self.pdf.setFillColor(colors.HexColor(hex_color))

    def _stroke(self, hex_color: str, width: float):
        self.pdf.setStrokeColor(colors.HexColor(hex_color))
        self.pdf.setLineWidth(width)

    def rect(self, x, top, w, h, fill=None, stroke=None, line_width=1.0):
        if fill:
            self._fill(fill)
        if stroke:
            self._stroke(stroke, line_width)
        self.pdf.rect(x, PAGE_HEIGHT - top - h, w, h,
                      fill=1 if fill else 0, stroke=1 if stroke else 0)

    def text(self, x, top, value, size, style="normal", color=TEXT_DARK,
             align="left", width=None):
        self._fill(color)
        self.pdf.setFont(self.fonts[style], size)
        baseline = PAGE_HEIGHT - top - size
        value    = self._fit(str(value), size, style, width)
        if align == "center" and width:
            self.pdf.drawCentredString(x + width / 2, baseline, value)
        elif align == "right" and width:
            self.pdf.drawRightString(x + width, baseline, value)
        else:
            self.pdf.drawString(x, baseline, value)

    def _fit(self, value, size, style, width):
        """Truncate with an ellipsis to fit width."""
        if not width:
            return value
        face = self.fonts[style]
        if pdfmetrics.stringWidth(value, face, size) <= width:
            return value
        while value and pdfmetrics.stringWidth(value + "...", face, size) > width:
            value = value[:-1]
        return value + "..."

    def line(self, x1, top1, x2, top2, color=BORDER, width=1.0):
        self._stroke(color, width)
        self.pdf.line(x1, PAGE_HEIGHT - top1, x2, PAGE_HEIGHT - top2)

    def logo_box(self, x, top, w, h, font_size):
        if self.logo is not None:
            try:
                self.pdf.drawImage(self.logo, x, PAGE_HEIGHT - top - h, width=w,
                                   height=h, mask="auto")
                return
            except OSError as exc:
                logger.warning("Report logo not drawn (%s); drawing placeholder", exc)
                self.logo = None
        self.rect(x, top, w, h, fill=PRIMARY)
        self.text(x, top + (h - font_size) / 2, "SOILY", font_size, "bold",
                  color="#ffffff", align="center", width=w)

    # ── sections ─────────────────────────────────────────────────────────
    def header(self, s: Section):
        y = s.y
        self.logo_box(MARGIN, y, 60, 45, 14)
        self.text(115, y + 5, s.title, 16, "bold", PRIMARY, width=CONTENT_WIDTH - 75)
        self.text(115, y + 25, s.data["subtitle"], 9, color=TEXT_LIGHT)
        self.text(115, y + 37, s.data["subtitle_sub"], 8, color=TEXT_LIGHT)
        self.line(MARGIN, y + 55, PAGE_WIDTH - MARGIN, y + 55)

    def _title_bar(self, s: Section):
        self.rect(MARGIN, s.y, CONTENT_WIDTH, TABLE_TITLE, fill=LIGHT_GREEN)
        self.text(50, s.y + 6, s.title, 10, "bold", PRIMARY)

    def _row_box(self, top, index):
        self.rect(MARGIN, top, CONTENT_WIDTH, TABLE_ROW,
                  fill="#ffffff" if index % 2 == 0 else ROW_ALT)
        self.rect(MARGIN, top, CONTENT_WIDTH, TABLE_ROW, stroke=BORDER, line_width=0.5)

    def table(self, s: Section):
        label_w = CONTENT_WIDTH * 0.4
        self._title_bar(s)
        top = s.y + TABLE_TITLE
        for index, row in enumerate(s.rows):
            self._row_box(top, index)
            self.text(50, top + 5, row.label, 9, "medium", width=label_w - 10)
            self.text(MARGIN + label_w, top + 5, row.value, 9,
                      width=CONTENT_WIDTH * 0.6 - 10)
            top += TABLE_ROW

    def npk_table(self, s: Section):
        col1 = col2 = CONTENT_WIDTH * 0.3
        self._title_bar(s)
        top = s.y + TABLE_TITLE
        heads = s.data["columns"]
        self.text(50, top + 5, heads[0], 8, "bold")
        self.text(MARGIN + col1, top + 5, heads[1], 8, "bold")
        self.text(MARGIN + col1 + col2, top + 5, heads[2], 8, "bold")
        for index, row in enumerate(s.rows):
            top += TABLE_ROW
            self._row_box(top, index)
            self.text(50, top + 5, row.label, 9, "medium", width=col1 - 10)
            self.text(MARGIN + col1, top + 5, row.value, 9, width=col2 - 10)
            self.text(MARGIN + col1 + col2, top + 5, row.status, 8, "bold", row.color)

    def health_and_crops(self, s: Section):
        d       = s.data
        gap     = 10
        col_w   = (CONTENT_WIDTH - gap) / 2
        left_x  = MARGIN
        right_x = MARGIN + col_w + gap
        y       = s.y

        # Soil health card
        self.rect(left_x, y, col_w, 110, fill=LIGHT_GREEN, stroke=PRIMARY)
        self.text(left_x + 10, y + 10, "SOIL HEALTH", 10, "bold", PRIMARY)
        self._fill(d["health_color"])
        self.pdf.circle(left_x + 10, PAGE_HEIGHT - (y + 32), 4, stroke=0, fill=1)
        self.text(left_x + 22, y + 27, d["soil_health"], 11, "bold")
        self.text(left_x + 10, y + 50, "Fertility Rating", 8, color=TEXT_LIGHT)
        self.text(left_x + 10, y + 63, d["fertility_rating"], 28, "bold", d["health_color"])
        self.text(left_x + 55, y + 75, "/10", 12, color=TEXT_LIGHT)
        bar_w = col_w - 90
        self.rect(left_x + 90, y + 80, bar_w, 6, fill=BORDER)
        if d["fertility_ratio"] > 0:
            self.rect(left_x + 90, y + 80, bar_w * d["fertility_ratio"], 6,
                      fill=d["health_color"])

        # Crop card
        inner = col_w - 20
        self.rect(right_x, y, col_w, 110, fill=LIGHT_GREEN, stroke=PRIMARY)
        self.text(right_x + 10, y + 10, "RECOMMENDED CROP", 10, "bold", PRIMARY)
        self.text(right_x + 10, y + 28, d["primary_crop"], 13, "bold", DARK_GREEN,
                  width=inner)
        self.text(right_x + 10, y + 48, d["match_score"], 8)
        self.text(right_x + 10, y + 62, d["fertilizer"], 8, width=inner)
        if d["alternatives"]:
            self.text(right_x + 10, y + 78, "Alternatives:", 7, "bold", TEXT_LIGHT)
            for idx, line in enumerate(d["alternatives"]):
                self.text(right_x + 10, y + 88 + idx * 8, line, 7, width=inner)

    def cover(self, s: Section):
        d = s.data
        self.rect(0, 0, PAGE_WIDTH, PAGE_HEIGHT, fill=LIGHT_GREEN)
        self.logo_box(222.5, 200, 150, 120, 32)
        self.text(50, 380, s.title, 24, "bold", PRIMARY, align="center", width=495)
        self.text(50, 410, d["subtitle"], 18, "bold", PRIMARY, align="center", width=495)
        self.rect(120, 480, 355, 100, fill="#ffffff", stroke=PRIMARY, line_width=2)
        self.text(120, 500, d["farmer_name"], 16, "bold", align="center", width=355)
        self.text(120, 530, d["location"], 12, align="center", width=355)
        self.text(120, 555, d["report_count"], 11, color=TEXT_LIGHT,
                  align="center", width=355)

    def footer(self, page: Page):
        self.line(MARGIN, PAGE_HEIGHT - 40, PAGE_WIDTH - MARGIN, PAGE_HEIGHT - 40,
                  width=0.5)
        self.text(MARGIN, PAGE_HEIGHT - 30, page.footer, 8, color=TEXT_LIGHT, width=400)
        self.text(450, PAGE_HEIGHT - 30, page.page_label, 8, color=TEXT_LIGHT,
                  align="right", width=105)

    def page(self, page: Page):
        for section in page.sections:
            getattr(self, section.kind)(section)
        self.footer(page)
        self.pdf.showPage()


def paint(layout: ReportLayout, logo_path: str | None = None,
          fonts_dir: str | None = None, title: str = "SOILY Soil Analysis Report") -> bytes:
    """Render a layout tree to PDF bytes."""
    buf = io.BytesIO()
    pdf = canvas.Canvas(buf, pagesize=(PAGE_WIDTH, PAGE_HEIGHT), invariant=1)
    pdf.setTitle(title)
    pdf.setAuthor("SOILY")
    pdf.setCreator("SOILY")

    painter = _Painter(pdf, register_fonts(fonts_dir), load_logo(logo_path))
    for page in layout.pages:
        painter.page(page)
    pdf.save()
    return buf.getvalue()


# ─────────────────────────────────────────────────────────────────────────────
# Public entry points
# ─────────────────────────────────────────────────────────────────────────────

def render_single_report(analysis: SoilAnalysis, farmer: Farmer,
                         generated_at: datetime,
                         logo_path: str | None = None,
                         fonts_dir: str | None = None) -> ReportFile:
    """
    PDF for one analysis.

    Raises:
        ReportDataError: the analysis or farmer is missing a required part.
    """
    layout = build_single_layout(analysis, farmer, generated_at)
    content = paint(layout, logo_path, fonts_dir,
                    title=f"Soil Analysis Report - {farmer.full_name}")
    return ReportFile(content=content, filename=f"soil-analysis-{analysis.id}.pdf")


def render_multi_report(analyses: list[SoilAnalysis], farmer: Farmer,
                        generated_at: datetime,
                        logo_path: str | None = None,
                        fonts_dir: str | None = None) -> ReportFile:
    """Cover page plus one page per analysis."""
    layout = build_multi_layout(analyses, farmer, generated_at)
    content = paint(layout, logo_path, fonts_dir,
                    title=f"Soil Analysis Reports - {farmer.full_name}")
    stamp = int(generated_at.timestamp() * 1000)
    return ReportFile(content=content, filename=f"all-soil-reports-{stamp}.pdf")
