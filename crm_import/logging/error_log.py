from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from crm_import.models.error_record import ErrorRecord

"""Error log buffering.

- JSON Lines with a fixed key set (see ErrorRecord)
- one `<dir>/errors-YYYYMMDD-HHMMSS.log` (UTC) per run, created on first flush
- records are buffered and flushed once at the end of the run (or on cleanup)
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """In-memory buffer for error records; flush() appends JSON Lines.

    Not thread safe; the import runs strictly sequentially.
    """
    def __init__(self, directory: Path | None = None) -> None:
        self._records: list[ErrorRecord] = []
        self._directory = directory or LOGS_DIR
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._directory.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._directory / f"errors-{stamp}.log"
        return self._file_path

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    @property
    def records(self) -> list[ErrorRecord]:
        return list(self._records)

    def flush(self) -> Path | None:
        """Write buffered records; returns the file path, None when nothing was written."""
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
