import os
import struct
import zlib
from datetime import datetime, timezone

import pytest

from services.report_layout import ReportDataError
from services.report_service import (
    load_logo, register_fonts, render_multi_report, render_single_report,
)
from conftest import make_analysis, make_farmer


GENERATED = datetime(2025, 3, 5, 9, 0, tzinfo=timezone.utc)


def _png_bytes(width=200, height=200):
    def chunk(kind, body):
        return (struct.pack(">I", len(body)) + kind + body
                + struct.pack(">I", zlib.crc32(kind + body) & 0xFFFFFFFF))

    raw = b"".join(b"\x00" + bytes((x * 7 + y) % 256 for x in range(width * 3))
                   for y in range(height))
    return (b"\x89PNG\r\n\x1a\n"
            + chunk(b"IHDR", struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0))
            + chunk(b"IDAT", zlib.compress(raw))
            + chunk(b"IEND", b""))


def test_single_report_without_logo(tmp_path):
    report = render_single_report(
        make_analysis(id=42), make_farmer(), GENERATED,
        logo_path=os.path.join(tmp_path, "nope.png"),
    )
    assert report.content.startswith(b"%PDF")
    assert len(report.content) > 0
    assert report.filename == "soil-analysis-42.pdf"
    assert report.mimetype == "application/pdf"


def test_rendering_is_byte_identical_for_same_input():
    first = render_single_report(make_analysis(), make_farmer(), GENERATED)
    second = render_single_report(make_analysis(), make_farmer(), GENERATED)
    assert first.content == second.content


def test_multi_report_filename_uses_millisecond_stamp():
    report = render_multi_report([make_analysis(id=1), make_analysis(id=2)],
                                 make_farmer(), GENERATED)
    assert report.content.startswith(b"%PDF")
    assert report.filename == f"all-soil-reports-{int(GENERATED.timestamp() * 1000)}.pdf"


def test_multi_report_rejects_empty_history():
    with pytest.raises(ReportDataError):
        render_multi_report([], make_farmer(), GENERATED)


def test_missing_assets_fall_back(tmp_path):
    assert load_logo(None) is None
    assert load_logo(os.path.join(tmp_path, "logo1.png")) is None
    fonts = register_fonts(str(tmp_path))
    assert fonts["normal"] == "Helvetica"
    assert fonts["bold"] == "Helvetica-Bold"
    assert register_fonts(None) == fonts


def test_truncated_logo_falls_back_to_placeholder(tmp_path):
    good = tmp_path / "logo.png"
    good.write_bytes(_png_bytes())
    assert load_logo(str(good)) is not None

    truncated = tmp_path / "logo1.png"
    truncated.write_bytes(_png_bytes()[:80])
    assert load_logo(str(truncated)) is None

    report = render_single_report(make_analysis(), make_farmer(), GENERATED,
                                  logo_path=str(truncated))
    assert report.content.startswith(b"%PDF")
