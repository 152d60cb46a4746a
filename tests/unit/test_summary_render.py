from __future__ import annotations

from datetime import timedelta

from crm_import.models.run_statistics import RunStatistics, SheetStat
from crm_import.services.summary import format_elapsed, render_sheet_table, render_summary_line


def _stats(**kwargs) -> RunStatistics:
    stats = RunStatistics(**kwargs)
    stats.finished_at = stats.started_at + timedelta(seconds=2)
    return stats


def test_render_summary_line():
    stats = _stats(kind="catalog", total_rows=10, created=7, duplicate=1, skipped=1, errors=1, images_attached=5)
    assert render_summary_line(stats) == (
        "SUMMARY kind=catalog rows=10 created=7 duplicate=1 skipped=1 errors=1 "
        "images=5 skipped_sheets=0 elapsed_sec=2"
    )


def test_render_summary_line_dry_run_flag():
    line = render_summary_line(_stats(kind="offers", dry_run=True))
    assert line.endswith(" dry_run=1")


def test_format_elapsed():
    assert format_elapsed(0) == "0"
    assert format_elapsed(3.0) == "3"
    assert format_elapsed(1.23456) == "1.23"
    assert format_elapsed(0.0012) == "0.0012"


def test_sheet_table():
    stats = _stats(kind="offers")
    stats.sheets = [
        SheetStat(sheet="Yogesh", zone="WEST", rows=12, records=5, created=4, duplicate=1, expected=5),
        SheetStat(sheet="Sasi", zone="SOUTH", error="sheet not found in workbook"),
    ]
    lines = render_sheet_table(stats)
    assert lines[0].split() == ["sheet", "zone", "rows", "records", "created", "dup", "skipped", "errors", "expected"]
    assert lines[1].split() == ["Yogesh", "WEST", "12", "5", "4", "1", "0", "0", "5"]
    assert lines[2].split() == ["Sasi", "SOUTH", "0", "0", "0", "0", "0", "0", "-"]
    assert lines[3] == "Sasi: skipped (sheet not found in workbook)"


def test_sheet_table_empty():
    assert render_sheet_table(_stats(kind="catalog")) == []
