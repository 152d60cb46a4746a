from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .cells import clean_text, is_empty

"""Header resolver.

Locates the header row within the first rows of a sheet and builds a
field -> column index map from a declarative column table.

Matching is case-insensitive and substring tolerant: a configured label
"Reg Date" matches a header cell "Reg Date (dd/mm/yyyy)". Column labels drift
between hand-maintained files, so exact matching would make the importer
brittle. Because substrings can over-match, each ColumnSpec lists its labels
from most to least specific and an exact match always wins over a substring
match.
"""

__all__ = [
    "ColumnSpec",
    "HeaderMap",
    "HeaderNotFoundError",
    "MissingColumnsError",
    "find_header_row",
    "resolve_header",
]

DEFAULT_SEARCH_ROWS = 10


class HeaderNotFoundError(Exception):
    """Raised when no row within the search window carries all markers."""


class MissingColumnsError(Exception):
    """Raised when required columns cannot be mapped in the header row."""


@dataclass(frozen=True)
class ColumnSpec:
    field: str
    names: tuple[str, ...]
    exact: bool = False  # True: substring fallback 無効


def _norm(value: Any) -> str:
    return clean_text(value).casefold()


def _cell_matches(cell: Any, label: str, exact: bool = False) -> bool:
    text = _norm(cell)
    if not text:
        return False
    wanted = label.casefold()
    if text == wanted:
        return True
    return not exact and wanted in text


def find_header_row(
    rows: Sequence[Sequence[Any]],
    markers: Sequence[str],
    search_rows: int = DEFAULT_SEARCH_ROWS,
) -> int:
    """Return the index of the first row containing every marker label."""
    for idx, row in enumerate(rows[:search_rows]):
        if not row or all(is_empty(c) for c in row):
            continue
        if all(any(_cell_matches(c, m) for c in row) for m in markers):
            return idx
    raise HeaderNotFoundError(
        f"no header row with markers {list(markers)} in first {search_rows} rows"
    )


@dataclass(frozen=True)
class HeaderMap:
    """Field name -> column index for one sheet. Immutable once built."""

    header_row: int
    columns: Mapping[str, int]
    labels: tuple[str, ...] = field(default=())

    def has(self, name: str) -> bool:
        return name in self.columns

    def index(self, name: str) -> int | None:
        return self.columns.get(name)

    def value(self, row: Sequence[Any], name: str) -> Any:
        idx = self.columns.get(name)
        if idx is None or idx >= len(row):
            return None
        return row[idx]

    @property
    def data_start(self) -> int:
        return self.header_row + 1


def _locate(labels: Sequence[Any], spec: ColumnSpec) -> int | None:
    # exact 一致を全ラベルで先に探し、見つからなければ substring
    for name in spec.names:
        for idx, cell in enumerate(labels):
            if _cell_matches(cell, name, exact=True):
                return idx
    if spec.exact:
        return None
    for name in spec.names:
        for idx, cell in enumerate(labels):
            if _cell_matches(cell, name):
                return idx
    return None


def resolve_header(
    rows: Sequence[Sequence[Any]],
    columns: Sequence[ColumnSpec],
    markers: Sequence[str],
    search_rows: int = DEFAULT_SEARCH_ROWS,
    required: Sequence[str] = (),
) -> HeaderMap:
    """Find the header row and map every ColumnSpec to a column index.

    Raises HeaderNotFoundError when the markers are not found within the
    window, MissingColumnsError when a required field is unmapped.
    """
    header_row = find_header_row(rows, markers, search_rows)
    labels = rows[header_row]
    mapping: dict[str, int] = {}
    for spec in columns:
        idx = _locate(labels, spec)
        if idx is not None:
            mapping[spec.field] = idx

    missing = [f for f in required if f not in mapping]
    if missing:
        raise MissingColumnsError(f"header row {header_row} missing columns: {missing}")

    return HeaderMap(
        header_row=header_row,
        columns=MappingProxyType(mapping),
        labels=tuple(clean_text(c) for c in labels),
    )
