from __future__ import annotations

import functools
import json
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from ..db.store import StoreError
from ..excel.cells import clean_code, clean_text
from ..excel.header import (
    ColumnSpec,
    HeaderMap,
    HeaderNotFoundError,
    MissingColumnsError,
    resolve_header,
)
from ..excel.images import DEFAULT_DRAWING_PART, ImportedImage, extract_embedded_images
from ..excel.reader import Sheet, read_workbook
from ..models.records import LogicalRecord
from ..models.run_statistics import Outcome, RunStatistics, SheetStat
from .grouping import build_catalog_records
from .image_binding import bind_images, list_folder_images, load_image_file, pair_folder_images
from .orchestrator import FatalImportError, RecordValidationError, SequentialImportSession
from .progress import ProgressTracker

"""Spare-part catalog import.

Single sheet, one record per row, part number as the business key. Pictures
pasted into the sheet are recovered from the workbook container and stored as
data URLs on the created item. An optional photo folder can be paired with
catalog items afterwards (sorted file names vs. creation order).
"""

__all__ = [
    "CATALOG_COLUMNS",
    "CATALOG_MARKERS",
    "build_description",
    "build_catalog_values",
    "attach_folder_images",
    "import_catalog",
]

logger = logging.getLogger(__name__)

CATALOG_COLUMNS: tuple[ColumnSpec, ...] = (
    ColumnSpec("hsn_code", ("HSN Code", "HSN")),
    ColumnSpec("name", ("Product Name",)),
    ColumnSpec("part_number", ("Part ID", "Part Number")),
    ColumnSpec("image", ("Image and brochures of product", "Image")),
    ColumnSpec("application", ("(Use/Application of product)", "Use/Application")),
    ColumnSpec("model_spec", ("Model Specification",)),
    ColumnSpec("manufacturing_unit", ("Manufacturing Unit",)),
    ColumnSpec("technical_sheet", ("Ratings/Technical sheet", "Technical sheet")),
)
CATALOG_MARKERS = ("Product Name", "Part ID")
REQUIRED_CATALOG_FIELDS = ("name", "part_number")

DESCRIPTION_LINES = (
    ("hsn_code", "HSN Code"),
    ("application", "Use/Application"),
    ("model_spec", "Model Specification"),
    ("manufacturing_unit", "Manufacturing Unit"),
)


def build_description(fields: Mapping[str, Any]) -> str | None:
    lines = []
    for name, label in DESCRIPTION_LINES:
        value = clean_code(fields.get(name)) if name == "hsn_code" else clean_text(fields.get(name))
        if value:
            lines.append(f"{label}: {value}")
    return "\n".join(lines) or None


def build_catalog_values(
    record: LogicalRecord, actor_id: int, image: ImportedImage | None = None
) -> dict[str, Any]:
    technical = clean_text(record.get("technical_sheet"))
    if image is not None:
        image_url = image.data_url
    else:
        image_url = clean_text(record.get("image")) or None
    return {
        "name": clean_text(record.get("name")),
        "partNumber": record.key,
        "description": build_description(record.fields),
        "category": None,
        "basePrice": 0,
        "imageUrl": image_url,
        "specifications": json.dumps({"technicalSheet": technical}) if technical else None,
        "status": "ACTIVE",
        "createdById": actor_id,
        "updatedById": actor_id,
    }


def _import_item(
    session: SequentialImportSession,
    stats: RunStatistics,
    images: Mapping[int, ImportedImage],
    record: LogicalRecord,
) -> Outcome:
    if not record.key:
        raise RecordValidationError(f"Part ID is required for {clean_text(record.get('name'))!r}")
    if session.resolver.catalog_item_exists(record.key):
        logger.info("spare part with Part ID %r already exists, skipping", record.key)
        return Outcome.DUPLICATE
    image = images.get(record.data_index)
    item_id = session.store.create_catalog_item(
        build_catalog_values(record, session.actor.id, image)
    )
    session.resolver.register_catalog_item(record.key, item_id)
    if image is not None:
        stats.images_attached += 1
    logger.debug(
        "created spare part %s id=%s%s", record.key, item_id,
        f" [image {image.media_file_name}]" if image else "",
    )
    return Outcome.CREATED


def _pick_sheet(book: Mapping[str, Sheet], sheet_name: str | None) -> Sheet:
    if sheet_name is not None:
        sheet = book.get(sheet_name)
        if sheet is None:
            raise FatalImportError(f"sheet {sheet_name!r} not found in workbook")
        return sheet
    if not book:
        raise FatalImportError("workbook has no sheets")
    return next(iter(book.values()))


def _resolve_catalog_header(session: SequentialImportSession, rows: Sequence[Sequence[Any]]) -> HeaderMap:
    try:
        return resolve_header(
            rows,
            CATALOG_COLUMNS,
            CATALOG_MARKERS,
            search_rows=session.header_search_rows,
            required=REQUIRED_CATALOG_FIELDS,
        )
    except (HeaderNotFoundError, MissingColumnsError) as e:
        raise FatalImportError(str(e)) from e


def attach_folder_images(
    session: SequentialImportSession, stats: RunStatistics, images_dir: Path
) -> int:
    """Pair a photo folder with catalog items in creation order.

    Returns the number of items updated. A missing folder or a count mismatch
    is a warning; a failing update is logged and the pairing continues.
    """
    if not images_dir.is_dir():
        logger.warning("images directory not found: %s; skipping image attachment", images_dir)
        return 0
    files = list_folder_images(images_dir)
    if not files:
        logger.warning("no image files found in %s", images_dir)
        return 0

    pairing = pair_folder_images(files, session.store.list_catalog_item_ids())
    logger.info("attaching %d images from %s", len(pairing.pairs), images_dir)
    updated = 0
    for item_id, path in pairing.pairs:
        try:
            session.store.update_catalog_item_image(item_id, load_image_file(path).data_url)
        except (OSError, StoreError) as e:
            logger.error("image %s for item %s failed: %s", path.name, item_id, e)
            session.log_error("<IMAGES>", -1, "IMAGE_ERROR", f"{path.name}: {e}", str(item_id))
            continue
        updated += 1
    stats.images_attached += updated
    if pairing.extra_images:
        logger.warning("extra images (%d) were not used", pairing.extra_images)
    if pairing.missing_images:
        logger.warning("%d catalog items have no image in %s", pairing.missing_images, images_dir)
    return updated


def import_catalog(
    session: SequentialImportSession,
    workbook: Path,
    *,
    sheet_name: str | None = None,
    drawing_part: str = DEFAULT_DRAWING_PART,
    images_dir: Path | None = None,
    reset: bool = False,
) -> RunStatistics:
    """Import the spare-part catalog sheet.

    Raises FatalImportError when the sheet or its header cannot be read.
    With reset=True every existing catalog item (and its offer links) is
    deleted first.
    """
    stats = RunStatistics(kind="catalog")
    session.use_workbook(workbook)
    book = read_workbook(
        workbook,
        target_sheets=[sheet_name] if sheet_name else None,
        keep_na_strings=list(session.keep_na_strings) or None,
    )
    sheet = _pick_sheet(book, sheet_name)
    header = _resolve_catalog_header(session, sheet.rows)
    logger.info("using sheet %s, header at row %d", sheet.name, header.header_row + 1)

    if reset:
        links, items = session.store.delete_all_catalog_items()
        logger.warning("reset: deleted %d spare parts and %d offer links", items, links)

    sheet_stat = SheetStat(sheet=sheet.name)
    stats.sheets.append(sheet_stat)
    sheet_stat.rows = len(sheet.rows) - header.data_start
    stats.total_rows = sheet_stat.rows

    grouping = build_catalog_records(sheet.rows, header, key_field="part_number", name_field="name")
    sheet_stat.records = len(grouping.records)
    for skipped in grouping.skipped:
        logger.debug("row %d skipped: %s", skipped.source_row + 1, skipped.reason)
        stats.record(Outcome.SKIPPED)
        sheet_stat.record(Outcome.SKIPPED)

    extraction = extract_embedded_images(workbook, drawing_part)
    for item in extraction.skipped:
        logger.warning("embedded image anchor %d skipped: %s", item.position, item.reason)
    images = bind_images(grouping.records, extraction, header.header_row)
    if images:
        logger.info("%d embedded images bound to rows", len(images))

    handler = functools.partial(_import_item, session, stats, images)
    with ProgressTracker(len(grouping.records), description=sheet.name, unit="part") as progress:
        for record in grouping.records:
            session.run_record(stats, sheet_stat, record, handler)
            progress.advance(created=sheet_stat.created, errors=sheet_stat.errors)

    if images_dir is not None:
        attach_folder_images(session, stats, images_dir)

    return stats.finish()
