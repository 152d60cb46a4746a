from __future__ import annotations

import functools
import logging
from collections.abc import Sequence
from datetime import date, datetime
from pathlib import Path
from typing import Any

from ..excel.cells import clean_code, clean_text, is_empty, to_date, to_number
from ..excel.header import (
    ColumnSpec,
    HeaderMap,
    HeaderNotFoundError,
    MissingColumnsError,
    resolve_header,
)
from ..excel.reader import read_workbook
from ..models.config_models import OfferSheetConfig
from ..models.records import LogicalRecord
from ..models.run_statistics import Outcome, RunStatistics, SheetStat
from .grouping import group_rows
from .orchestrator import RecordValidationError, SequentialImportSession
from .progress import ProgressTracker

"""Offer funnel import.

One sheet per salesperson. Each sheet is resolved, grouped into offers (one
primary row plus serial-only continuation rows) and imported record by record
through the session:

    duplicate check (offer reference) -> customer -> contact
    -> assets (one per distinct serial) -> offer -> offer/asset links
"""

__all__ = [
    "OFFER_COLUMNS",
    "OFFER_MARKERS",
    "PRODUCT_TYPES",
    "normalize_product_type",
    "normalize_lead",
    "month_to_yyyymm",
    "probability_percentage",
    "derive_stage",
    "read_expected_count",
    "build_offer_values",
    "import_offers",
]

logger = logging.getLogger(__name__)

OFFER_COLUMNS: tuple[ColumnSpec, ...] = (
    ColumnSpec("sl", ("SL", "SL No", "S.No"), exact=True),
    ColumnSpec("reg_date", ("Reg Date",)),
    ColumnSpec("company", ("Company",)),
    ColumnSpec("location", ("Location",)),
    ColumnSpec("department", ("Department",)),
    ColumnSpec("contact_person", ("Contact Person",)),
    ColumnSpec("contact_number", ("Contact Number",)),
    ColumnSpec("email", ("E-Mail", "Email")),
    ColumnSpec("machine_serial", ("Machine Serial",)),
    ColumnSpec("product_type", ("Product Type",)),
    ColumnSpec("lead", ("Lead",)),
    ColumnSpec("offer_reference", ("Offer Reference Number",)),
    ColumnSpec("offer_date", ("Offer Reference Date",)),
    ColumnSpec("offer_value", ("Offer Value",)),
    ColumnSpec("offer_month", ("Offer Month",)),
    ColumnSpec("po_expected", ("PO Expected",)),
    ColumnSpec("probability", ("Probability", "Probabality")),
    ColumnSpec("po_number", ("PO Number",)),
    ColumnSpec("po_date", ("PO Date",)),
    ColumnSpec("po_value", ("PO Value",)),
    ColumnSpec("po_received_month", ("PO Received Month",)),
    ColumnSpec("open_funnel", ("Open Funnel",), exact=True),
    ColumnSpec("remarks", ("Remarks",), exact=True),
)
OFFER_MARKERS = ("SL", "Company")
REQUIRED_OFFER_FIELDS = ("reg_date", "offer_reference")

EXPECTED_COUNT_LABEL = "total offers"

UNKNOWN_COMPANY = "Unknown Company"
UNKNOWN_CONTACT = "Unknown Contact"
UNKNOWN_PHONE = "0000000000"

# 表記ゆれ・タイポ込み (キーは casefold 済み)
PRODUCT_TYPES = {
    "contract": "CONTRACT",
    "contarct": "CONTRACT",
    "ccontarct": "CONTRACT",
    "mc": "CONTRACT",
    "spp": "SPP",
    "relocation": "RELOCATION",
    "upgrade kit": "UPGRADE_KIT",
    "upgrade": "UPGRADE_KIT",
    "software": "SOFTWARE",
    "bd charges": "BD_CHARGES",
    "bd spare": "BD_SPARE",
    "midlife upgrade": "MIDLIFE_UPGRADE",
    "mlu": "MIDLIFE_UPGRADE",
    "retrofit kit": "RETROFIT_KIT",
    "retrofit": "RETROFIT_KIT",
}

LEAD_FLAGS = {"yes": "YES", "no": "NO"}

MONTHS = {
    "january": 1, "januray": 1, "jan": 1,
    "february": 2, "febraury": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sept": 9, "sep": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}


def normalize_product_type(value: Any) -> str | None:
    return PRODUCT_TYPES.get(clean_text(value).casefold())


def normalize_lead(value: Any) -> str | None:
    return LEAD_FLAGS.get(clean_text(value).casefold())


def month_to_yyyymm(value: Any, year: int | None) -> str | None:
    """Month name (or a date cell) -> "YYYY-MM"; None without a year."""
    if year is None or is_empty(value):
        return None
    if isinstance(value, (datetime, date)):
        month = value.month
    else:
        month = MONTHS.get(clean_text(value).casefold())
        if month is None:
            return None
    return f"{year:04d}-{month:02d}"


def probability_percentage(value: Any) -> int | None:
    """Fractions (<= 1) become percentages, anything else is rounded."""
    prob = to_number(value)
    if prob is None or prob <= 0:
        return None
    if prob <= 1:
        return round(prob * 100)
    return round(prob)


def derive_stage(po_number: Any, po_value: float | None, probability: Any) -> str:
    if not is_empty(po_number) and po_value is not None and po_value > 0:
        return "WON"
    prob = to_number(probability)
    if prob is not None and prob > 0:
        return "PROPOSAL_SENT"
    return "INITIAL"


def read_expected_count(rows: Sequence[Sequence[Any]]) -> int | None:
    """Find a "Total Offers" label followed by a number in the title rows."""
    for row in rows:
        for i, cell in enumerate(row[:-1]):
            if clean_text(cell).casefold() != EXPECTED_COUNT_LABEL:
                continue
            nxt = row[i + 1]
            if isinstance(nxt, (int, float)) and not isinstance(nxt, bool):
                count = to_number(nxt)
                if count is not None:
                    return int(count)
    return None


def _positive(value: Any) -> float | None:
    number = to_number(value)
    return number if number is not None and number > 0 else None


def build_offer_values(
    record: LogicalRecord,
    sheet: OfferSheetConfig,
    customer_id: int | None = None,
    contact_id: int | None = None,
    offer_year: int | None = None,
) -> dict[str, Any]:
    """Column -> value map for the Offer row of one record.

    Raises RecordValidationError before anything is written when the
    registration date cannot be read.
    """
    registration = to_date(record.get("reg_date"))
    if registration is None:
        raise RecordValidationError(
            f"unreadable registration date {clean_text(record.get('reg_date'))!r}"
        )
    year = offer_year or registration.year
    company = clean_text(record.get("company")) or UNKNOWN_COMPANY
    po_value = _positive(record.get("po_value"))
    po_number = clean_code(record.get("po_number")) or None
    probability = record.get("probability")
    open_funnel = to_number(record.get("open_funnel"))

    return {
        "offerReferenceNumber": record.key,
        "offerReferenceDate": to_date(record.get("offer_date")),
        "title": f"Offer for {company}",
        "productType": normalize_product_type(record.get("product_type")),
        "lead": normalize_lead(record.get("lead")),
        "registrationDate": registration,
        "company": company,
        "location": clean_text(record.get("location")) or None,
        "department": clean_text(record.get("department")) or None,
        "contactPersonName": clean_text(record.get("contact_person")) or UNKNOWN_CONTACT,
        "contactNumber": clean_code(record.get("contact_number")) or UNKNOWN_PHONE,
        "email": clean_text(record.get("email")) or None,
        "machineSerialNumber": record.continuation[0] if record.continuation else None,
        "status": "OPEN",
        "stage": derive_stage(po_number, po_value, probability),
        "customerId": customer_id,
        "contactId": contact_id,
        "zoneId": sheet.zone_id,
        "assignedToId": sheet.user_id,
        "createdById": sheet.user_id,
        "updatedById": sheet.user_id,
        "offerValue": _positive(record.get("offer_value")),
        "offerMonth": month_to_yyyymm(record.get("offer_month"), year)
        or f"{year:04d}-{registration.month:02d}",
        "poExpectedMonth": month_to_yyyymm(record.get("po_expected"), year),
        "probabilityPercentage": probability_percentage(probability),
        "poNumber": po_number,
        "poDate": to_date(record.get("po_date")),
        "poValue": po_value,
        "poReceivedMonth": month_to_yyyymm(record.get("po_received_month"), year),
        "openFunnel": True if open_funnel is None else open_funnel > 0,
        "remarks": clean_text(record.get("remarks")) or None,
    }


def _import_offer(
    session: SequentialImportSession,
    sheet: OfferSheetConfig,
    offer_year: int | None,
    dry_run: bool,
    seen: set[str],
    record: LogicalRecord,
) -> Outcome:
    reference = record.key or ""
    if reference in seen or session.store.find_offer_by_reference(reference) is not None:
        logger.info("offer %s already exists, skipping", reference)
        return Outcome.DUPLICATE

    # 書き込み前に検証
    values = build_offer_values(record, sheet, offer_year=offer_year)
    if dry_run:
        seen.add(reference)
        return Outcome.CREATED

    resolver = session.resolver
    customer_id = resolver.resolve_customer(values["company"], sheet.zone_id, values["location"])
    values["customerId"] = customer_id
    values["contactId"] = resolver.resolve_contact(
        customer_id, values["contactNumber"], values["contactPersonName"], values["email"]
    )
    # オファー作成前に全資産を解決する
    asset_ids = [resolver.resolve_asset(serial, customer_id) for serial in record.continuation]
    offer_id = session.store.create_offer(values)
    seen.add(reference)
    for asset_id in asset_ids:
        session.store.link_offer_asset(offer_id, asset_id)
    logger.debug(
        "created offer %s id=%s (%d serials)", reference, offer_id, len(record.continuation)
    )
    return Outcome.CREATED


def _resolve_offer_header(session: SequentialImportSession, rows: Sequence[Sequence[Any]]) -> HeaderMap:
    return resolve_header(
        rows,
        OFFER_COLUMNS,
        OFFER_MARKERS,
        search_rows=session.header_search_rows,
        required=REQUIRED_OFFER_FIELDS,
    )


def import_offers(
    session: SequentialImportSession,
    workbook: Path,
    sheets: Sequence[OfferSheetConfig],
    *,
    offer_year: int | None = None,
    dry_run: bool = False,
) -> RunStatistics:
    """Import every configured salesperson sheet of an offer funnel workbook.

    A sheet that is missing, empty or has no recognizable header is skipped
    and counted in skipped_sheets; the remaining sheets still run.
    """
    stats = RunStatistics(kind="offers", dry_run=dry_run)
    session.use_workbook(workbook)
    book = read_workbook(
        workbook,
        target_sheets=[s.sheet for s in sheets],
        keep_na_strings=list(session.keep_na_strings) or None,
    )
    seen: set[str] = set()

    for cfg in sheets:
        sheet_stat = SheetStat(sheet=cfg.sheet, zone=cfg.zone)
        stats.sheets.append(sheet_stat)
        sheet = book.get(cfg.sheet)
        if sheet is None:
            session.sheet_failed(stats, sheet_stat, "sheet not found in workbook")
            continue
        if not sheet.rows:
            session.sheet_failed(stats, sheet_stat, "sheet is empty")
            continue
        try:
            header = _resolve_offer_header(session, sheet.rows)
        except (HeaderNotFoundError, MissingColumnsError) as e:
            session.sheet_failed(stats, sheet_stat, str(e))
            continue

        logger.info("processing sheet %s (%s), header at row %d",
                    cfg.sheet, cfg.zone or f"zone {cfg.zone_id}", header.header_row + 1)
        sheet_stat.rows = len(sheet.rows) - header.data_start
        stats.total_rows += sheet_stat.rows

        grouping = group_rows(
            sheet.rows, header,
            start_field="reg_date",
            continuation_field="machine_serial",
            key_field="offer_reference",
            sequence_field="sl",
        )
        sheet_stat.records = len(grouping.records)
        for pos, names in grouping.dropped_fields:
            logger.warning(
                "sheet %s row %d: continuation row values ignored for %s",
                cfg.sheet, pos + 1, ", ".join(names),
            )
        for skipped in grouping.skipped:
            logger.info("sheet %s row %d skipped: %s", cfg.sheet, skipped.source_row + 1, skipped.reason)
            stats.record(Outcome.SKIPPED)
            sheet_stat.record(Outcome.SKIPPED)

        sheet_stat.expected = read_expected_count(sheet.rows[: header.header_row])
        if sheet_stat.expected is not None and sheet_stat.expected != grouping.total:
            logger.warning(
                "sheet %s: title says %d offers, found %d",
                cfg.sheet, sheet_stat.expected, grouping.total,
            )

        handler = functools.partial(_import_offer, session, cfg, offer_year, dry_run, seen)
        with ProgressTracker(len(grouping.records), description=cfg.sheet, unit="offer") as progress:
            for record in grouping.records:
                session.run_record(stats, sheet_stat, record, handler)
                progress.advance(created=sheet_stat.created, errors=sheet_stat.errors)

        logger.info(
            "sheet %s: %d offers, created=%d duplicate=%d skipped=%d errors=%d",
            cfg.sheet, sheet_stat.records, sheet_stat.created, sheet_stat.duplicate,
            sheet_stat.skipped, sheet_stat.errors,
        )

    return stats.finish()
