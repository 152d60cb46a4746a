from __future__ import annotations

from pathlib import Path

import pytest

from crm_import.config.loader import ConfigError, load_config


def _write(temp_workdir: Path, text: str) -> Path:
    path = temp_workdir / "config" / "import.yml"
    path.write_text(text, encoding="utf-8")
    return path


@pytest.mark.parametrize(
    "text",
    [
        # admin_user_id 必須
        "header_search_rows: 5\n",
        # 型違い
        "admin_user_id: one\n",
        "admin_user_id: 0\n",
        # 未知キー
        "admin_user_id: 1\nsource_directory: ./data\n",
        "admin_user_id: 1\nthrottle: {every: 50, jitter: 1}\n",
        # シート定義の必須キー
        "admin_user_id: 1\noffers: {sheets: [{sheet: Rahul, zone_id: 1}]}\n",
        "admin_user_id: 1\nthrottle: {every: 0}\n",
        "admin_user_id: 1\noffers: {offer_year: 25}\n",
    ],
)
def test_schema_rejects(temp_workdir: Path, text: str):
    with pytest.raises(ConfigError, match="config validation failed"):
        load_config(_write(temp_workdir, text))


def test_schema_accepts_full_config(temp_workdir: Path):
    text = """admin_user_id: 1
header_search_rows: 12
throttle: {every: 25, pause_seconds: 0.5}
keep_na_strings: [NA]
error_log_dir: out/logs
offers:
  workbook: data/offers.xlsx
  offer_year: 2025
  sheets:
    - {sheet: Pankaj, zone: EAST, zone_id: 4, user_id: 41}
catalog:
  workbook: data/catalog.xlsx
  sheet: Parts
  drawing_part: xl/drawings/drawing2.xml
database:
  dsn: postgresql://localhost/crm
"""
    cfg = load_config(_write(temp_workdir, text))
    assert cfg.keep_na_strings == ("NA",)
    assert cfg.offers.offer_year == 2025
    assert cfg.catalog.sheet == "Parts"
    assert cfg.throttle.pause_seconds == 0.5
