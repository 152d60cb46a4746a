from __future__ import annotations

import json
from pathlib import Path

import pytest

from crm_import.db.store import StoreError
from crm_import.models.records import LogicalRecord
from crm_import.models.run_statistics import Outcome, RunStatistics, SheetStat
from crm_import.services.orchestrator import (
    FatalImportError,
    RecordValidationError,
    SequentialImportSession,
    Throttle,
)
from tests.support import FakeStore


def _record(row: int, key: str = "K") -> LogicalRecord:
    return LogicalRecord(source_row=row, data_index=row - 1, fields={}, key=key)


def test_throttle_pauses_once_per_batch():
    sleeps = []
    throttle = Throttle(every=50, pause_seconds=0.1, sleep=sleeps.append)
    for _ in range(120):
        throttle.tick()
    assert sleeps == [0.1, 0.1]
    assert throttle.pauses == 2


def test_throttle_disabled_with_zero_pause():
    sleeps = []
    throttle = Throttle(every=1, pause_seconds=0, sleep=sleeps.append)
    throttle.tick()
    assert sleeps == []


def test_start_requires_actor():
    with pytest.raises(FatalImportError, match="admin user with id 99"):
        SequentialImportSession.start(FakeStore(), 99)


def test_start_wraps_store_failure():
    class Broken(FakeStore):
        def find_actor(self, user_id):
            raise StoreError("connection reset")

    with pytest.raises(FatalImportError, match="connection reset"):
        SequentialImportSession.start(Broken(), 1)


def test_run_record_classifies_outcomes(session: SequentialImportSession, temp_workdir: Path):
    stats = RunStatistics(kind="offers")
    sheet = SheetStat(sheet="Yogesh")

    def validation(_):
        raise RecordValidationError("offer reference missing")

    def store_fail(_):
        raise StoreError("unique constraint")

    def crash(_):
        raise KeyError("boom")

    assert session.run_record(stats, sheet, _record(2), lambda r: Outcome.CREATED) is Outcome.CREATED
    assert session.run_record(stats, sheet, _record(3), lambda r: Outcome.DUPLICATE) is Outcome.DUPLICATE
    assert session.run_record(stats, sheet, _record(4), validation) is Outcome.ERROR
    assert session.run_record(stats, sheet, _record(5, "OFR-5"), store_fail) is Outcome.ERROR
    assert session.run_record(stats, sheet, _record(6), crash) is Outcome.ERROR

    assert (stats.created, stats.duplicate, stats.errors) == (1, 1, 3)
    assert (sheet.created, sheet.duplicate, sheet.errors) == (1, 1, 3)
    assert session.throttle.count == 5

    path = session.flush_errors()
    entries = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [e["error_type"] for e in entries] == ["VALIDATION_ERROR", "STORE_ERROR", "UNEXPECTED_ERROR"]
    assert entries[1]["row"] == 6
    assert entries[1]["key"] == "OFR-5"


def test_sheet_failed_counts_and_logs(session: SequentialImportSession):
    stats = RunStatistics(kind="offers")
    sheet = SheetStat(sheet="Ghost")
    session.use_workbook(Path("offers.xlsx"))
    session.sheet_failed(stats, sheet, "sheet not found in workbook")
    assert stats.skipped_sheets == 1
    assert sheet.error == "sheet not found in workbook"
    rec = session.error_log.records[0]
    assert (rec.file, rec.sheet, rec.row, rec.error_type) == ("offers.xlsx", "Ghost", -1, "SHEET_SKIPPED")


def test_flush_errors_none_when_clean(session: SequentialImportSession):
    assert session.flush_errors() is None
