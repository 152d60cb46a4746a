from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from crm_import.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from crm_import.db.connection import open_store
from crm_import.db.store import Store, StoreError
from crm_import.excel.cells import clean_text
from crm_import.excel.header import HeaderNotFoundError, MissingColumnsError, resolve_header
from crm_import.excel.reader import WorkbookNotFoundError, read_workbook
from crm_import.logging.error_log import ErrorLogBuffer
from crm_import.logging.init import log_summary, set_debug, setup_logging
from crm_import.models.config_models import ImportConfig
from crm_import.models.run_statistics import RunStatistics
from crm_import.services.catalog import CATALOG_COLUMNS, CATALOG_MARKERS, import_catalog
from crm_import.services.offers import OFFER_COLUMNS, OFFER_MARKERS, import_offers
from crm_import.services.orchestrator import FatalImportError, SequentialImportSession, Throttle
from crm_import.services.summary import render_sheet_table, render_summary_line

"""CLI entrypoint.

    crm-import [--config PATH] [--debug] offers [WORKBOOK] [--dry-run]
    crm-import [--config PATH] [--debug] catalog [WORKBOOK] [--images DIR] [--reset]
    crm-import [--config PATH] inspect WORKBOOK

Exit codes:
    0  run completed (per-row errors are reported in the summary, not here)
    1  fatal setup error (config, workbook, store connection, admin user,
       unreadable catalog header)
    128 + signal number when interrupted by SIGINT / SIGTERM
"""

EXIT_SUCCESS = 0
EXIT_FATAL = 1

INSPECT_SAMPLE_ROWS = 3


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv.

    override=True により .env の値で既存環境変数を上書きし、PostgreSQL 接続情報を最優先化。
    """
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="crm-import", description="CRM spreadsheet importer")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="config YAML path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    offers = sub.add_parser("offers", help="import salesperson offer funnels")
    offers.add_argument("workbook", nargs="?", type=Path, help="defaults to offers.workbook")
    offers.add_argument("--dry-run", action="store_true", help="classify records without writing")

    catalog = sub.add_parser("catalog", help="import the spare-part catalog")
    catalog.add_argument("workbook", nargs="?", type=Path, help="defaults to catalog.workbook")
    catalog.add_argument("--images", type=Path, default=None, help="folder of photos to pair with items")
    catalog.add_argument("--reset", action="store_true", help="delete existing catalog items first")

    inspect = sub.add_parser("inspect", help="print sheet headers and first rows, then exit")
    inspect.add_argument("workbook", type=Path)
    return p.parse_args(argv)


def _inspect_workbook(path: Path, cfg: ImportConfig, logger: logging.Logger) -> int:
    try:
        book = read_workbook(path, keep_na_strings=list(cfg.keep_na_strings) or None)
    except WorkbookNotFoundError as e:
        logger.error(str(e))
        return EXIT_FATAL
    logger.info(f"FILE: {path.name} sheets={len(book)}")
    for name, sheet in book.items():
        detected = "none"
        header = None
        for kind, columns, markers in (
            ("offers", OFFER_COLUMNS, OFFER_MARKERS),
            ("catalog", CATALOG_COLUMNS, CATALOG_MARKERS),
        ):
            try:
                header = resolve_header(sheet.rows, columns, markers, cfg.header_search_rows)
            except (HeaderNotFoundError, MissingColumnsError):
                continue
            detected = kind
            break
        logger.info(f"  SHEET: {name} rows={len(sheet)} layout={detected}")
        if header is None:
            continue
        logger.info(f"    header_row={header.header_row + 1} columns={dict(header.columns)}")
        sample = sheet.rows[header.data_start : header.data_start + INSPECT_SAMPLE_ROWS]
        for row in sample:
            logger.info(f"    {[clean_text(c) for c in row]}")
    return EXIT_SUCCESS


def _install_signal_handlers(store: Store, logger: logging.Logger) -> dict[int, Any]:
    """Close the store and exit on SIGINT/SIGTERM; returns the previous handlers."""

    def _handler(signum: int, frame: Any) -> None:
        logger.info(f"received {signal.Signals(signum).name}, cleaning up...")
        store.close()
        raise SystemExit(128 + signum)

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, _handler)
    return previous


def _restore_signal_handlers(previous: dict[int, Any]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def _workbook_path(args: argparse.Namespace, cfg: ImportConfig) -> Path | None:
    if args.workbook is not None:
        return args.workbook
    configured = cfg.offers.workbook if args.command == "offers" else cfg.catalog.workbook
    return Path(configured) if configured else None


def _run_import(
    args: argparse.Namespace, cfg: ImportConfig, workbook: Path, store: Store
) -> RunStatistics:
    session = SequentialImportSession.start(
        store,
        cfg.admin_user_id,
        throttle=Throttle(cfg.throttle.every, cfg.throttle.pause_seconds),
        error_log=ErrorLogBuffer(Path(cfg.error_log_dir)),
        header_search_rows=cfg.header_search_rows,
        keep_na_strings=cfg.keep_na_strings,
    )
    try:
        if args.command == "offers":
            if not cfg.offers.sheets:
                raise FatalImportError("no offer sheets configured (offers.sheets)")
            return import_offers(
                session, workbook, cfg.offers.sheets,
                offer_year=cfg.offers.offer_year, dry_run=args.dry_run,
            )
        return import_catalog(
            session, workbook,
            sheet_name=cfg.catalog.sheet,
            drawing_part=cfg.catalog.drawing_part,
            images_dir=args.images,
            reset=args.reset,
        )
    finally:
        # エラーログは中断時も含め 1 回だけ書き出す
        session.flush_errors()


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None のときのみシステム引数を読む (テストの cli_main([]) 対策)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    # .env を最優先で読み込む (DB 接続パラメータ優先順位保証)
    _load_env_file(Path(".env"), override=True)
    if args.debug:
        set_debug()

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.command == "inspect":
        return _inspect_workbook(args.workbook, cfg, logger)

    workbook = _workbook_path(args, cfg)
    if workbook is None:
        logger.error(f"no workbook given and none configured for {args.command}")
        return EXIT_FATAL
    if not workbook.exists():
        logger.error(f"workbook not found: {workbook}")
        return EXIT_FATAL
    logger.info(f"importing {args.command} from: {workbook}")

    try:
        store = open_store(cfg.database)
    except StoreError as e:
        logger.error(f"store: {e}")
        return EXIT_FATAL

    previous = _install_signal_handlers(store, logger)
    try:
        stats = _run_import(args, cfg, workbook, store)
    except (FatalImportError, WorkbookNotFoundError) as e:
        logger.error(f"import: {e}")
        return EXIT_FATAL
    except StoreError as e:
        logger.error(f"store: {e}")
        return EXIT_FATAL
    finally:
        store.close()
        _restore_signal_handlers(previous)

    log_summary(render_summary_line(stats).removeprefix("SUMMARY "))
    if args.command == "offers":
        for line in render_sheet_table(stats):
            log_summary(line)
    return EXIT_SUCCESS


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
