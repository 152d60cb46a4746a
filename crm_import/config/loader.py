from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from crm_import.models.config_models import (
    CatalogConfig,
    DatabaseConfig,
    ImportConfig,
    OffersConfig,
    OfferSheetConfig,
    ThrottleConfig,
)

"""Config loader.

Responsibilities:
- Load YAML config (default config/import.yml)
- Validate against crm_import/config/schema.json (unknown keys rejected)
- Apply defaults and build the frozen ImportConfig tree
"""

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
]

DEFAULT_CONFIG_PATH = Path("config/import.yml")
SCHEMA_PATH = Path(__file__).with_name("schema.json")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or not valid JSON, or the config
            violates the schema (missing keys, wrong types, extra keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _offers(raw: dict[str, Any]) -> OffersConfig:
    sheets = tuple(
        OfferSheetConfig(
            sheet=s["sheet"],
            zone_id=s["zone_id"],
            user_id=s["user_id"],
            zone=s.get("zone"),
        )
        for s in raw.get("sheets", [])
    )
    names = [s.sheet for s in sheets]
    if len(names) != len(set(names)):
        raise ConfigError(f"duplicate offer sheet entries: {names}")
    return OffersConfig(
        workbook=raw.get("workbook"),
        sheets=sheets,
        offer_year=raw.get("offer_year"),
    )


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")

    _validate_config_schema(data)

    throttle_raw = data.get("throttle", {})
    catalog_raw = data.get("catalog", {})
    db_raw = data.get("database", {})
    defaults = CatalogConfig()
    return ImportConfig(
        admin_user_id=data["admin_user_id"],
        header_search_rows=data.get("header_search_rows", 10),
        throttle=ThrottleConfig(
            every=throttle_raw.get("every", 50),
            pause_seconds=float(throttle_raw.get("pause_seconds", 0.1)),
        ),
        keep_na_strings=tuple(data.get("keep_na_strings", [])),
        error_log_dir=data.get("error_log_dir", "logs"),
        offers=_offers(data.get("offers", {})),
        catalog=CatalogConfig(
            workbook=catalog_raw.get("workbook"),
            sheet=catalog_raw.get("sheet"),
            drawing_part=catalog_raw.get("drawing_part", defaults.drawing_part),
        ),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
    )
