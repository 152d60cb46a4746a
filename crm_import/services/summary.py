from __future__ import annotations

from ..models.run_statistics import RunStatistics

"""Summary rendering for an import run.

Line format (one line, space separated key=value pairs):

    SUMMARY kind=offers rows=120 created=40 duplicate=3 skipped=2 errors=1
            images=0 skipped_sheets=0 elapsed_sec=3.52

Offer runs additionally print a per-sheet (salesperson) table.
"""

__all__ = [
    "format_elapsed",
    "render_summary_line",
    "render_sheet_table",
]

SHEET_TABLE_HEADER = ("sheet", "zone", "rows", "records", "created", "dup", "skipped", "errors", "expected")


def format_elapsed(seconds: float) -> str:
    """Elapsed seconds without scientific notation; integers lose the '.0'."""
    if seconds <= 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.2f}"


def render_summary_line(stats: RunStatistics) -> str:
    """Render the SUMMARY line for one run.

    Examples:
        >>> s = RunStatistics(kind="catalog", total_rows=10, created=8, duplicate=1, errors=1)
        >>> s.finished_at = s.started_at
        >>> render_summary_line(s)
        'SUMMARY kind=catalog rows=10 created=8 duplicate=1 skipped=0 errors=1 images=0 skipped_sheets=0 elapsed_sec=0'
    """
    line = (
        f"SUMMARY kind={stats.kind} "
        f"rows={stats.total_rows} "
        f"created={stats.created} "
        f"duplicate={stats.duplicate} "
        f"skipped={stats.skipped} "
        f"errors={stats.errors} "
        f"images={stats.images_attached} "
        f"skipped_sheets={stats.skipped_sheets} "
        f"elapsed_sec={format_elapsed(stats.elapsed_seconds)}"
    )
    if stats.dry_run:
        line += " dry_run=1"
    return line


def render_sheet_table(stats: RunStatistics) -> list[str]:
    """Fixed-width per-sheet table; empty when the run has no sheets."""
    if not stats.sheets:
        return []
    rows = [SHEET_TABLE_HEADER]
    for s in stats.sheets:
        rows.append((
            s.sheet,
            s.zone or "-",
            str(s.rows),
            str(s.records),
            str(s.created),
            str(s.duplicate),
            str(s.skipped),
            str(s.errors),
            "-" if s.expected is None else str(s.expected),
        ))
    widths = [max(len(r[i]) for r in rows) for i in range(len(SHEET_TABLE_HEADER))]
    lines = []
    for r in rows:
        cells = [r[0].ljust(widths[0]), r[1].ljust(widths[1])]
        cells += [v.rjust(w) for v, w in zip(r[2:], widths[2:])]
        lines.append("  ".join(cells).rstrip())
    for s in stats.sheets:
        if s.error:
            lines.append(f"{s.sheet}: skipped ({s.error})")
    return lines
