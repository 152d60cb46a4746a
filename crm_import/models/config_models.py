from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the CRM spreadsheet importer.

Built by crm_import.config.loader from config/import.yml after JSON-schema
validation. All instances are frozen; the loader applies defaults.
"""

__all__ = [
    "DatabaseConfig",
    "ThrottleConfig",
    "OfferSheetConfig",
    "OffersConfig",
    "CatalogConfig",
    "ImportConfig",
]


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback.

    Environment variables (DATABASE_URL / PGDSN / PG*) take precedence.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class ThrottleConfig:
    every: int = 50  # pause once per this many processed rows
    pause_seconds: float = 0.1


@dataclass(frozen=True)
class OfferSheetConfig:
    """One salesperson sheet of the offer funnel workbook."""
    sheet: str
    zone_id: int
    user_id: int  # assignee / creator of the sheet's offers
    zone: str | None = None  # display label (WEST, SOUTH, ...)


@dataclass(frozen=True)
class OffersConfig:
    workbook: str | None = None
    sheets: tuple[OfferSheetConfig, ...] = ()
    offer_year: int | None = None  # 月名 -> YYYY-MM 変換の年を固定したい場合


@dataclass(frozen=True)
class CatalogConfig:
    workbook: str | None = None
    sheet: str | None = None  # None = first sheet
    drawing_part: str = "xl/drawings/drawing1.xml"


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for an import run."""
    admin_user_id: int
    header_search_rows: int = 10
    throttle: ThrottleConfig = field(default_factory=ThrottleConfig)
    keep_na_strings: tuple[str, ...] = ()
    error_log_dir: str = "logs"
    offers: OffersConfig = field(default_factory=OffersConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
