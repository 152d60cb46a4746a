from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

"""Logical record models.

A LogicalRecord is one business entity rebuilt from one or more contiguous
sheet rows: exactly one primary row supplies the scalar fields, continuation
rows only contribute distinct values of the repeated field (machine serials).
"""

__all__ = [
    "LogicalRecord",
    "SkippedRecord",
    "GroupingResult",
]


@dataclass(frozen=True)
class LogicalRecord:
    source_row: int  # 0-based absolute sheet row of the primary row
    data_index: int  # 0-based index within the data rows (source_row - header_row - 1)
    fields: Mapping[str, Any]  # field -> primary row cell value
    continuation: tuple[str, ...] = ()  # distinct values, first-seen order
    key: str | None = None  # business key (offer reference / part number)

    def get(self, name: str, default: Any = None) -> Any:
        value = self.fields.get(name)
        return default if value is None else value

    @property
    def excel_row(self) -> int:
        """1-based row number as shown in spreadsheet applications."""
        return self.source_row + 1


@dataclass(frozen=True)
class SkippedRecord:
    source_row: int
    reason: str


@dataclass
class GroupingResult:
    records: list[LogicalRecord] = field(default_factory=list)
    skipped: list[SkippedRecord] = field(default_factory=list)
    orphan_rows: int = 0  # continuation-like rows with no open record
    # (source_row, field names) of continuation rows whose scalar cells were ignored
    dropped_fields: list[tuple[int, tuple[str, ...]]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.records) + len(self.skipped)
