from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the JSON Lines error log.

Each per-record or per-sheet failure of an import run becomes one line with a
fixed key set, so the file can be grepped or loaded for manual follow-up.
row is the 1-based spreadsheet row; -1 marks sheet/file level errors.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: workbook file name
        sheet: sheet name ("<FILE_LEVEL>" when not sheet specific)
        row: 1-based row number, -1 when unknown
        key: natural/business key of the failing record ("" when none)
        error_type: UPPER_SNAKE classification
        message: error description
    """
    timestamp: str
    file: str
    sheet: str
    row: int
    key: str
    error_type: str
    message: str

    @staticmethod
    def create(
        file: str, sheet: str, row: int, error_type: str, message: str, key: str = ""
    ) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            sheet=sheet,
            row=row,
            key=key,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # dataclass -> dict なので追加キーは混入しない
        return json.dumps(asdict(self), ensure_ascii=False)
