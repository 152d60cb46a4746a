from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

"""Tabular reader.

Opens a workbook and yields each sheet as a plain 2-D array of raw cells.
No header is assumed here: header detection is the header resolver's job,
and absolute row positions must survive so that drawing anchors (0-based
sheet rows) can be matched later.
"""

__all__ = [
    "Sheet",
    "WorkbookNotFoundError",
    "read_workbook",
]


class WorkbookNotFoundError(Exception):
    """Raised when the workbook path does not exist."""


@dataclass(frozen=True)
class Sheet:
    name: str
    rows: list[list[Any]]  # 0 始まり = シート上の絶対行

    def __len__(self) -> int:
        return len(self.rows)


def _frame_to_rows(df: pd.DataFrame) -> list[list[Any]]:
    rows: list[list[Any]] = []
    for raw in df.itertuples(index=False, name=None):
        rows.append([None if pd.isna(v) else v for v in raw])
    return rows


def read_workbook(
    path: Path,
    target_sheets: Iterable[str] | None = None,
    keep_na_strings: list[str] | None = None,
) -> dict[str, Sheet]:
    """Read every (or only the targeted) sheet of a workbook.

    Parameters
    ----------
    path: workbook path
    target_sheets: restrict to these sheet names (None = all sheets)
    keep_na_strings: strings to exclude from pandas' default NaN conversion
        (e.g. ``["NA"]`` so a company literally called "NA" survives)
    """
    if not path.exists():
        raise WorkbookNotFoundError(f"workbook not found: {path}")

    import pandas._libs.parsers as parsers

    if keep_na_strings:
        na_values = list(parsers.STR_NA_VALUES - set(keep_na_strings))
        keep_default_na = False
    else:
        na_values = None
        keep_default_na = True

    wanted = set(target_sheets) if target_sheets is not None else None
    sheets: dict[str, Sheet] = {}
    with pd.ExcelFile(path) as xls:
        for name in xls.sheet_names:
            if wanted is not None and str(name) not in wanted:
                continue
            # ヘッダなしで生読み (ヘッダ行は resolver が検出)
            df = xls.parse(name, header=None, keep_default_na=keep_default_na, na_values=na_values)
            sheets[str(name)] = Sheet(name=str(name), rows=_frame_to_rows(df))
    return sheets
