from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from ..db.store import Actor, StoreError
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.records import LogicalRecord
from ..models.run_statistics import Outcome, RunStatistics, SheetStat
from .resolution import EntityResolver, EntityStore

"""Import session shared by the offer and catalog importers.

Records are processed strictly one after another on a single store
connection. Entity resolution is lookup-then-create, which is not atomic at
the store level; running two records concurrently could create the same
customer twice. SequentialImportSession is the only place records are
dispatched, and it never overlaps two of them.

Error containment:
- RecordValidationError / StoreError / anything unexpected inside one record
  -> that record counts as an error, the loop continues
- sheet level problems are handled by the importers (sheet skipped)
- FatalImportError aborts the run (CLI exit 1)
"""

__all__ = [
    "FatalImportError",
    "RecordValidationError",
    "Throttle",
    "SequentialImportSession",
    "RecordHandler",
]

logger = logging.getLogger(__name__)


class FatalImportError(Exception):
    """Setup problem that makes the whole run pointless (exit 1)."""


class RecordValidationError(Exception):
    """A record lacks a required field."""


class Throttle:
    """Pauses briefly after every `every` processed rows.

    Keeps a long import from hammering the store with an unbroken burst of
    writes. This is scheduling, not error recovery.
    """

    def __init__(
        self,
        every: int = 50,
        pause_seconds: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.every = every
        self.pause_seconds = pause_seconds
        self._sleep = sleep
        self.count = 0
        self.pauses = 0

    def tick(self) -> None:
        self.count += 1
        if self.every > 0 and self.pause_seconds > 0 and self.count % self.every == 0:
            self._sleep(self.pause_seconds)
            self.pauses += 1


RecordHandler = Callable[[LogicalRecord], Outcome]


class SequentialImportSession:
    """Single-writer import run: one store, one resolver, one set of counters."""

    def __init__(
        self,
        store: EntityStore,
        actor: Actor,
        *,
        throttle: Throttle | None = None,
        error_log: ErrorLogBuffer | None = None,
        header_search_rows: int = 10,
        keep_na_strings: tuple[str, ...] = (),
    ) -> None:
        self.store = store
        self.actor = actor
        self.resolver = EntityResolver(store, actor.id)
        self.throttle = throttle or Throttle()
        self.error_log = error_log or ErrorLogBuffer()
        self.header_search_rows = header_search_rows
        self.keep_na_strings = keep_na_strings
        self.file_name = ""

    @classmethod
    def start(cls, store, admin_user_id: int, **kwargs) -> SequentialImportSession:
        """Verify the imported-by actor exists and open a session."""
        try:
            actor = store.find_actor(admin_user_id)
        except StoreError as e:
            raise FatalImportError(f"cannot look up admin user {admin_user_id}: {e}") from e
        if actor is None:
            raise FatalImportError(
                f"admin user with id {admin_user_id} not found; set admin_user_id in config"
            )
        logger.info("using admin user: %s (id=%s)", actor.label, actor.id)
        return cls(store, actor, **kwargs)

    def use_workbook(self, path: Path) -> None:
        self.file_name = path.name

    def log_error(
        self, sheet: str, row: int, error_type: str, message: str, key: str = ""
    ) -> None:
        self.error_log.append(
            ErrorRecord.create(
                file=self.file_name, sheet=sheet, row=row, error_type=error_type,
                message=message, key=key,
            )
        )

    def sheet_failed(self, stats: RunStatistics, sheet_stat: SheetStat, reason: str) -> None:
        sheet_stat.error = reason
        stats.skipped_sheets += 1
        logger.warning("sheet %s skipped: %s", sheet_stat.sheet, reason)
        self.log_error(sheet_stat.sheet, -1, "SHEET_SKIPPED", reason)

    def run_record(
        self,
        stats: RunStatistics,
        sheet_stat: SheetStat,
        record: LogicalRecord,
        handler: RecordHandler,
    ) -> Outcome:
        """Run one record through `handler`, containing any failure to that record."""
        key = record.key or ""
        try:
            outcome = handler(record)
        except RecordValidationError as e:
            outcome = Outcome.ERROR
            logger.error("row %d: %s", record.excel_row, e)
            self.log_error(sheet_stat.sheet, record.excel_row, "VALIDATION_ERROR", str(e), key)
        except StoreError as e:
            outcome = Outcome.ERROR
            logger.error("row %d key=%s store error: %s", record.excel_row, key, e)
            self.log_error(sheet_stat.sheet, record.excel_row, "STORE_ERROR", str(e), key)
        except Exception as e:  # 1 レコードの失敗でバッチを止めない
            outcome = Outcome.ERROR
            logger.error("row %d key=%s unexpected error: %s", record.excel_row, key, e, exc_info=True)
            self.log_error(sheet_stat.sheet, record.excel_row, "UNEXPECTED_ERROR", str(e), key)
        stats.record(outcome)
        sheet_stat.record(outcome)
        self.throttle.tick()
        return outcome

    def flush_errors(self) -> Path | None:
        try:
            path = self.error_log.flush()
        except OSError as e:
            logger.warning("could not write error log: %s", e)
            return None
        if path is not None:
            logger.info("error details written to %s", path)
        return path
