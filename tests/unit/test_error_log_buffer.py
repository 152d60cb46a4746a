from __future__ import annotations

import json
from pathlib import Path

from crm_import.logging.error_log import ErrorLogBuffer, ErrorRecord

KEYS = {"timestamp", "file", "sheet", "row", "key", "error_type", "message"}


def test_error_record_creation_and_json_line():
    rec = ErrorRecord.create(
        file="offers.xlsx",
        sheet="Yogesh",
        row=38,
        error_type="STORE_ERROR",
        message="duplicate key",
        key="OFR-37",
    )
    data = json.loads(rec.to_json_line())
    assert data["file"] == "offers.xlsx"
    assert data["row"] == 38
    assert data["key"] == "OFR-37"
    assert data["timestamp"].endswith("Z")
    assert set(data) == KEYS


def test_error_log_buffer_flush(temp_workdir: Path):
    buf = ErrorLogBuffer(temp_workdir / "logs")
    buf.append(ErrorRecord.create("f.xlsx", "S", 2, "VALIDATION_ERROR", "Part ID is required"))
    buf.append(ErrorRecord.create("f.xlsx", "S", -1, "SHEET_SKIPPED", "no header"))
    path = buf.flush()
    assert path is not None and path.exists()
    assert path.name.startswith("errors-") and path.suffix == ".log"
    lines = path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2
    assert all(set(json.loads(raw)) == KEYS for raw in lines)
    # flush 後バッファクリア
    assert len(buf) == 0


def test_flush_without_records_writes_nothing(temp_workdir: Path):
    buf = ErrorLogBuffer(temp_workdir / "out")
    assert buf.flush() is None
    assert not (temp_workdir / "out").exists()


def test_multiple_flushes_append_same_file(temp_workdir: Path):
    buf = ErrorLogBuffer(temp_workdir / "logs")
    buf.append(ErrorRecord.create("f.xlsx", "S", 1, "STORE_ERROR", "dup"))
    first = buf.flush()
    size1 = first.stat().st_size
    buf.append(ErrorRecord.create("f.xlsx", "S", 2, "STORE_ERROR", "dup2"))
    second = buf.flush()
    assert first == second
    assert second.stat().st_size > size1


def test_non_ascii_message_kept(temp_workdir: Path):
    buf = ErrorLogBuffer(temp_workdir / "logs")
    buf.append(ErrorRecord.create("見積.xlsx", "S", 3, "VALIDATION_ERROR", "登録日が不正"))
    text = buf.flush().read_text(encoding="utf-8")
    assert "登録日が不正" in text
