# Shared pytest fixtures
from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from crm_import.logging.init import reset_logging
from crm_import.services.orchestrator import SequentialImportSession, Throttle
from crm_import.logging.error_log import ErrorLogBuffer
from tests.support import FakeStore


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def sample_config_yaml() -> str:
    return """admin_user_id: 1
throttle:
  every: 50
  pause_seconds: 0
error_log_dir: ./logs
offers:
  workbook: ./data/offers.xlsx
  sheets:
    - {sheet: Yogesh, zone: WEST, zone_id: 1, user_id: 11}
    - {sheet: Sasi, zone: SOUTH, zone_id: 2, user_id: 21}
catalog:
  workbook: ./data/catalog.xlsx
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture()
def session(fake_store: FakeStore, temp_workdir: Path) -> SequentialImportSession:
    """Session over the in-memory store; throttle never sleeps."""
    return SequentialImportSession.start(
        fake_store,
        1,
        throttle=Throttle(every=50, pause_seconds=0),
        error_log=ErrorLogBuffer(temp_workdir / "logs"),
    )
