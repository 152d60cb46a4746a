from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any

import pandas as pd

"""Cell value coercion helpers.

Workbooks are hand-maintained, so the same logical value shows up as
int / float / str / datetime depending on who typed it. These helpers collapse
the variants before the grouping and entity layers see them.
"""

__all__ = [
    "is_empty",
    "clean_text",
    "clean_code",
    "to_number",
    "to_date",
]

# Excel の 1900 年系シリアル値の基準日 (1900-02-29 バグ込み)
EXCEL_EPOCH = pd.Timestamp("1899-12-30")
DATE_FORMATS = ("%d/%m/%Y", "%Y-%m-%d", "%d-%m-%Y", "%d.%m.%Y")


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and value.replace("\xa0", " ").strip() == "":
        return True
    return False


def clean_text(value: Any) -> str:
    if is_empty(value):
        return ""
    return str(value).replace("\xa0", " ").strip()


def clean_code(value: Any) -> str:
    """Text form of an identifier cell (part number, phone, serial).

    pandas reads numeric identifier columns as float when the column has
    blanks, so ``12345`` arrives as ``12345.0``.
    """
    if isinstance(value, float) and not is_empty(value) and value.is_integer():
        return str(int(value))
    raw = clean_text(value)
    if raw.endswith(".0") and raw[:-2].isdigit():
        return raw[:-2]
    return raw


def to_number(value: Any) -> float | None:
    if is_empty(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    raw = clean_text(value).replace(",", "")
    try:
        return float(raw)
    except ValueError:
        return None


def to_date(value: Any) -> date | None:
    """Convert a date-ish cell to ``date``.

    Accepts datetime / Timestamp cells, Excel serial numbers and the
    day-first string layouts seen in the offer funnels.
    """
    if is_empty(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if value <= 0:
            return None
        return (EXCEL_EPOCH + pd.to_timedelta(float(value), unit="D")).date()
    raw = clean_text(value)
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None
