from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from ..excel.cells import clean_code, is_empty, to_number
from ..excel.header import HeaderMap
from ..models.records import GroupingResult, LogicalRecord, SkippedRecord

"""Row grouper / record builder.

Walks the data rows below the header and folds them into LogicalRecords.

Offer funnels: a row opens a new record when its record-start cell (Reg Date)
is filled and the sequence id (SL, first column) is a positive number. A row
with an empty record-start cell is a continuation of the open record and only
contributes its continuation value (machine serial). An empty row or the end
of the sheet closes the open record.

Catalog sheets have no continuation rows: every non-empty data row is one
record.
"""

__all__ = [
    "group_rows",
    "build_catalog_records",
]

logger = logging.getLogger(__name__)

MISSING_KEY = "missing_key"
MISSING_NAME = "missing_name"


def _row_empty(row: Sequence[Any]) -> bool:
    return all(is_empty(c) for c in row)


def _sequence_id(row: Sequence[Any], header: HeaderMap, sequence_field: str | None) -> float | None:
    if sequence_field is None:
        return 1.0
    idx = header.index(sequence_field)
    if idx is None:
        idx = 0  # 先頭列を連番列とみなす
    return to_number(row[idx]) if idx < len(row) else None


class _OpenRecord:
    """Mutable accumulator for the record currently being built."""

    def __init__(self, source_row: int, data_index: int, fields: dict[str, Any]) -> None:
        self.source_row = source_row
        self.data_index = data_index
        self.fields = fields
        self.values: list[str] = []
        self._seen: set[str] = set()

    def add(self, value: Any) -> None:
        text = clean_code(value)
        if not text:
            return
        # 大文字小文字・前後空白違いは同一シリアル扱い (最初の表記を保持)
        dedup = text.casefold()
        if dedup in self._seen:
            return
        self._seen.add(dedup)
        self.values.append(text)


def group_rows(
    rows: Sequence[Sequence[Any]],
    header: HeaderMap,
    start_field: str,
    continuation_field: str,
    key_field: str,
    sequence_field: str | None = None,
) -> GroupingResult:
    """Fold data rows into LogicalRecords.

    Parameters
    ----------
    rows: full sheet rows (absolute positions)
    header: resolved HeaderMap for the sheet
    start_field: field whose non-empty cell starts a record (e.g. reg_date)
    continuation_field: multi-valued field collected from every row (e.g. machine_serial)
    key_field: business key; records without it are skipped, not errors
    sequence_field: positive-number sequence id required on start rows
        (None disables the check)
    """
    result = GroupingResult()
    current: _OpenRecord | None = None
    scalar_fields = [f for f in header.columns if f not in (continuation_field, sequence_field)]

    def close() -> None:
        nonlocal current
        if current is None:
            return
        key = clean_code(current.fields.get(key_field))
        if not key:
            result.skipped.append(SkippedRecord(current.source_row, MISSING_KEY))
        else:
            result.records.append(
                LogicalRecord(
                    source_row=current.source_row,
                    data_index=current.data_index,
                    fields=current.fields,
                    continuation=tuple(current.values),
                    key=key,
                )
            )
        current = None

    for pos in range(header.data_start, len(rows)):
        row = rows[pos]
        if not row or _row_empty(row):
            close()
            continue

        start_value = header.value(row, start_field)
        if is_empty(start_value):
            if current is None:
                result.orphan_rows += 1
                continue
            current.add(header.value(row, continuation_field))
            dropped = tuple(
                f for f in scalar_fields if f != start_field and not is_empty(header.value(row, f))
            )
            if dropped:
                result.dropped_fields.append((pos, dropped))
            continue

        seq = _sequence_id(row, header, sequence_field)
        close()
        if seq is None or seq <= 0:
            logger.debug("row %d has %s but no positive sequence id", pos + 1, start_field)
            result.orphan_rows += 1
            continue

        fields = {f: header.value(row, f) for f in header.columns}
        current = _OpenRecord(pos, pos - header.data_start, fields)
        current.add(fields.get(continuation_field))

    close()
    return result


def build_catalog_records(
    rows: Sequence[Sequence[Any]],
    header: HeaderMap,
    key_field: str,
    name_field: str,
) -> GroupingResult:
    """One record per non-empty data row.

    Rows without a name are skipped (section/blank lines in the catalog);
    rows with a name but no key are kept with key=None so the orchestrator
    can report them as validation errors.
    """
    result = GroupingResult()
    for pos in range(header.data_start, len(rows)):
        row = rows[pos]
        if not row or _row_empty(row):
            continue
        fields = {f: header.value(row, f) for f in header.columns}
        if is_empty(fields.get(name_field)):
            result.skipped.append(SkippedRecord(pos, MISSING_NAME))
            continue
        key = clean_code(fields.get(key_field)) or None
        result.records.append(
            LogicalRecord(
                source_row=pos,
                data_index=pos - header.data_start,
                fields=fields,
                key=key,
            )
        )
    return result
