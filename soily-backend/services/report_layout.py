"""
services/report_layout.py
-------------------------
Report layout — turns a farmer + soil analyses into a declarative tree of
pages and fixed-height sections. No drawing happens here; report_service
paints the tree with ReportLab.

Coordinates are PDF points measured from the TOP of an A4 page (595 x 842).
Sections flow downwards from TOP_Y; a section that would cross
PAGE_HEIGHT - BOTTOM_MARGIN starts a fresh page.

Tree:
    ReportLayout
      └─ Page (number, total, footer text)
           └─ Section (kind, y, height, title, rows, data)

Section kinds:
    header            logo box + title + two subtitle lines     65 pt
    table             title bar + label/value rows              20 + 18·n
    npk_table         title bar + column heads + 3 status rows  20 + 18·4
    health_and_crops  soil-health card | crop card              120
    cover             full-page compilation cover               842

Usage:
    from services.report_layout import build_single_layout
    layout = build_single_layout(analysis, farmer, generated_at)
    [s.kind for s in layout.pages[0].sections]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from services.schemas import Farmer, SoilAnalysis
from services.scoring_service import nutrient_status


# ── Page geometry ─────────────────────────────────────────────────────────────
PAGE_WIDTH    = 595
PAGE_HEIGHT   = 842
MARGIN        = 40
BOTTOM_MARGIN = 60
TOP_Y         = 40
CONTENT_WIDTH = PAGE_WIDTH - 2 * MARGIN

HEADER_HEIGHT    = 65
TABLE_TITLE      = 20
TABLE_ROW        = 18
HEALTH_HEIGHT    = 120
SECTION_GAP      = 10
HEALTH_GAP       = 15
MAX_ALTERNATIVES = 3

# ── Palette ───────────────────────────────────────────────────────────────────
PRIMARY     = "#25995c"
LIGHT_GREEN = "#f0fdf4"
DARK_GREEN  = "#007236"
TEXT_DARK   = "#1f2937"
TEXT_LIGHT  = "#6b7280"
BORDER      = "#e5e7eb"
ROW_ALT     = "#f8fafc"

STATUS_COLORS: dict[str, str] = {
    "Low":    "#ef4444",
    "Medium": "#f59e0b",
    "Good":   "#10b981",
}

HEALTH_COLORS: dict[str, str] = {
    "Excellent": "#10b981",
    "Good":      "#22c55e",
    "Fair":      "#f59e0b",
    "Poor":      "#ef4444",
    "Critical":  "#dc2626",
}

REPORT_FARM_SIZES: dict[str, str] = {
    "small":  "Small (< 2 acres)",
    "medium": "Medium (2-10 acres)",
    "large":  "Large (10-50 acres)",
    "xlarge": "Extra Large (> 50 acres)",
}

SUBTITLE     = "Digital Soil Mapping & Crop Recommendation Platform"
SUBTITLE_SUB = "Using Satellite Imagery for Western Maharashtra"
FOOTER_BRAND = "SOILY - Digital Soil Mapping Platform"


class ReportDataError(ValueError):
    """A record passed to the report builder is missing a required part."""


@dataclass
class TableRow:
    label:  str
    value:  str
    status: str | None = None
    color:  str | None = None


@dataclass
class Section:
    kind:   str
    height: float
    title:  str = ""
    rows:   list[TableRow] = field(default_factory=list)
    data:   dict = field(default_factory=dict)
    gap:    float = 0          # space above, dropped at the top of a page
    y:      float = 0          # set when placed


@dataclass
class Page:
    number:   int
    sections: list[Section] = field(default_factory=list)
    total:    int = 0
    footer:   str = ""
    cover:    bool = False

    @property
    def page_label(self) -> str:
        return f"Page {self.number} of {self.total}"


@dataclass
class ReportLayout:
    mode:         str                  # 'single' | 'multi'
    generated_at: datetime
    pages:        list[Page] = field(default_factory=list)

    def sections(self) -> list[Section]:
        return [s for page in self.pages for s in page.sections]


# ─────────────────────────────────────────────────────────────────────────────
# Flow
# ─────────────────────────────────────────────────────────────────────────────

class _Flow:
    """Places sections top-down, breaking pages at the bottom threshold."""

    def __init__(self):
        self.pages: list[Page] = []
        self.y = TOP_Y

    def new_page(self, cover: bool = False) -> Page:
        page = Page(number=len(self.pages) + 1, cover=cover)
        self.pages.append(page)
        self.y = TOP_Y
        return page

    def place(self, section: Section) -> None:
        if not self.pages:
            self.new_page()
        page = self.pages[-1]
        top  = self.y + section.gap if page.sections else self.y
        if top + section.height > PAGE_HEIGHT - BOTTOM_MARGIN and page.sections:
            page = self.new_page()
            top  = self.y
        section.y = top
        page.sections.append(section)
        self.y = top + section.height

    def finish(self, generated_at: datetime) -> list[Page]:
        footer = f"{FOOTER_BRAND} | Generated: {_short_date(generated_at)}"
        for page in self.pages:
            page.total  = len(self.pages)
            page.footer = footer
        return self.pages


# ─────────────────────────────────────────────────────────────────────────────
# Section builders
# ─────────────────────────────────────────────────────────────────────────────

def header_section(title: str) -> Section:
    return Section(
        kind="header", height=HEADER_HEIGHT, title=title,
        data={"subtitle": SUBTITLE, "subtitle_sub": SUBTITLE_SUB},
    )


def table_section(title: str, rows: list[tuple[str, str]], gap: float = 0) -> Section:
    return Section(
        kind="table", title=title, gap=gap,
        height=TABLE_TITLE + TABLE_ROW * len(rows),
        rows=[TableRow(label, str(value)) for label, value in rows],
    )


def npk_section(analysis: SoilAnalysis, gap: float = 0) -> Section:
    s = analysis.sample
    entries = [
        ("Nitrogen (N)",   f"{s.nitrogen:.2f} kg/ha",   nutrient_status(s.nitrogen, "N")),
        ("Phosphorus (P)", f"{s.phosphorus:.0f} kg/ha", nutrient_status(s.phosphorus, "P")),
        ("Potassium (K)",  f"{s.potassium:.0f} kg/ha",  nutrient_status(s.potassium, "K")),
    ]
    rows = [
        TableRow(label, value, status=status,
                 color=STATUS_COLORS.get(status, TEXT_LIGHT))
        for label, value, status in entries
    ]
    return Section(
        kind="npk_table", title="NPK ANALYSIS", gap=gap, rows=rows,
        height=TABLE_TITLE + TABLE_ROW * (len(rows) + 1),
        data={"columns": ("NUTRIENT", "VALUE", "STATUS")},
    )


def health_section(analysis: SoilAnalysis, gap: float = 0) -> Section:
    rec    = analysis.crop_recommendation
    rating = analysis.fertility_rating
    return Section(
        kind="health_and_crops", height=HEALTH_HEIGHT, gap=gap,
        data={
            "soil_health":      analysis.soil_health,
            "health_color":     HEALTH_COLORS.get(analysis.soil_health, TEXT_LIGHT),
            "fertility_rating": f"{rating:.1f}",
            "fertility_ratio":  max(0.0, min(1.0, rating / 10)),
            "primary_crop":     rec.primary.name,
            "match_score":      f"Match Score: {rec.primary.match_score:.0f}%",
            "fertilizer":       f"Fertilizer: {rec.primary.fertilizer}",
            "alternatives": [
                f"{idx}. {crop.name} ({crop.match_score:.0f}%)"
                for idx, crop in enumerate(rec.alternatives[:MAX_ALTERNATIVES], start=1)
            ],
        },
    )


def cover_section(farmer: Farmer, report_count: int) -> Section:
    return Section(
        kind="cover", height=PAGE_HEIGHT, title="SOIL ANALYSIS REPORTS",
        data={
            "subtitle":     "COMPILATION REPORT",
            "farmer_name":  farmer.full_name,
            "location":     farmer.location,
            "report_count": f"Total Reports: {report_count}",
        },
    )


# ─────────────────────────────────────────────────────────────────────────────
# Layout builders
# ─────────────────────────────────────────────────────────────────────────────

def _check(analysis: SoilAnalysis | None, farmer: Farmer | None) -> None:
    if farmer is None:
        raise ReportDataError("farmer record is required")
    if analysis is None:
        raise ReportDataError("analysis record is required")
    for part in ("boundary", "sample", "crop_recommendation"):
        if getattr(analysis, part, None) is None:
            raise ReportDataError(f"analysis {analysis.id} has no {part}")
    if analysis.crop_recommendation.primary is None:
        raise ReportDataError(f"analysis {analysis.id} has no primary crop")


def build_single_layout(analysis: SoilAnalysis, farmer: Farmer,
                        generated_at: datetime) -> ReportLayout:
    """Full one-analysis report: header, five tables, health + crops."""
    _check(analysis, farmer)
    b, s = analysis.boundary, analysis.sample

    flow = _Flow()
    flow.place(header_section("SOIL ANALYSIS REPORT"))
    flow.place(table_section("FARMER INFORMATION", [
        ("Farmer Name",   farmer.full_name),
        ("Location",      farmer.location),
        ("Farm Size",     REPORT_FARM_SIZES.get(farmer.farm_size, farmer.farm_size)),
        ("Analysis Date", analysis.formatted_date),
        ("Season",        analysis.season),
    ]))
    flow.place(table_section("FARM BOUNDARY DETAILS", [
        ("Area",               f"{b.area:.2f} acres"),
        ("Perimeter",          f"{b.perimeter:.2f} km"),
        ("Center Coordinates", f"{b.center_latitude:.6f}°N, {b.center_longitude:.6f}°E"),
        ("Boundary Points",    len(b.coordinates)),
    ], gap=SECTION_GAP))
    flow.place(table_section("SOIL PROPERTIES ANALYSIS", [
        ("Soil Type",      s.soil_type),
        ("pH Level",       f"{s.ph:.2f}"),
        ("Organic Carbon", f"{s.organic_carbon:.2f} g/kg"),
        ("Clay Content",   f"{s.clay:.1f}%"),
        ("Sand Content",   f"{s.sand:.1f}%" if s.sand else "N/A"),
        ("Bulk Density",   f"{s.bulk_density:g} g/cm³" if s.bulk_density else "N/A"),
    ], gap=SECTION_GAP))
    flow.place(npk_section(analysis, gap=SECTION_GAP))
    flow.place(table_section("CLIMATE CONDITIONS", [
        ("Average Rainfall",    f"{s.rainfall:g} mm"),
        ("Average Temperature", f"{s.temperature:g}°C"),
    ], gap=SECTION_GAP))
    flow.place(health_section(analysis, gap=HEALTH_GAP))

    return ReportLayout(mode="single", generated_at=generated_at,
                        pages=flow.finish(generated_at))


def build_multi_layout(analyses: list[SoilAnalysis], farmer: Farmer,
                       generated_at: datetime) -> ReportLayout:
    """Cover page, then one compact page per analysis."""
    if farmer is None:
        raise ReportDataError("farmer record is required")
    if not analyses:
        raise ReportDataError("at least one analysis is required")
    for analysis in analyses:
        _check(analysis, farmer)

    flow = _Flow()
    flow.new_page(cover=True).sections.append(cover_section(farmer, len(analyses)))

    total = len(analyses)
    for idx, analysis in enumerate(analyses, start=1):
        flow.new_page()
        flow.place(header_section(f"SOIL ANALYSIS REPORT - {idx}/{total}"))
        flow.place(table_section("BASIC INFORMATION", [
            ("Farmer",    farmer.full_name),
            ("Date",      _short_date(analysis.analysis_date)),
            ("Area",      f"{analysis.boundary.area:.2f} acres"),
            ("Soil Type", analysis.sample.soil_type),
        ]))
        flow.place(npk_section(analysis, gap=SECTION_GAP))
        flow.place(health_section(analysis, gap=HEALTH_GAP))

    return ReportLayout(mode="multi", generated_at=generated_at,
                        pages=flow.finish(generated_at))


def _short_date(value: datetime) -> str:
    """en-IN numeric date, e.g. 5/3/2025."""
    return f"{value.day}/{value.month}/{value.year}"
