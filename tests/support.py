"""Workbook builders and an in-memory store shared by the test suite."""
from __future__ import annotations

import itertools
import zipfile
from pathlib import Path
from typing import Any

import pandas as pd

from crm_import.db.store import Actor, StoreError

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 16

DRAWING_NS = (
    'xmlns:xdr="http://schemas.openxmlformats.org/drawingml/2006/spreadsheetDrawing" '
    'xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main" '
    'xmlns:r="http://schemas.openxmlformats.org/officeDocument/2006/relationships"'
)


# -- workbook builders -------------------------------------------------------

def make_workbook(path: Path, sheets: dict[str, list[list[Any]]]) -> Path:
    """Write raw rows (no header handling) to an .xlsx file."""
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=name, header=False, index=False)
    return path


def anchor_xml(row: int, rel_id: str, col: int = 0) -> str:
    return (
        "<xdr:twoCellAnchor>"
        f"<xdr:from><xdr:col>{col}</xdr:col><xdr:colOff>0</xdr:colOff>"
        f"<xdr:row>{row}</xdr:row><xdr:rowOff>0</xdr:rowOff></xdr:from>"
        f"<xdr:to><xdr:col>{col + 1}</xdr:col><xdr:colOff>0</xdr:colOff>"
        f"<xdr:row>{row + 1}</xdr:row><xdr:rowOff>0</xdr:rowOff></xdr:to>"
        '<xdr:pic><xdr:nvPicPr><xdr:cNvPr id="1" name="Picture"/><xdr:cNvPicPr/></xdr:nvPicPr>'
        f'<xdr:blipFill><a:blip r:embed="{rel_id}"/></xdr:blipFill>'
        "<xdr:spPr/></xdr:pic><xdr:clientData/>"
        "</xdr:twoCellAnchor>"
    )


def drawing_xml(anchors: list[str]) -> str:
    return f'<?xml version="1.0" encoding="UTF-8"?><xdr:wsDr {DRAWING_NS}>{"".join(anchors)}</xdr:wsDr>'


def rels_xml(targets: dict[str, str]) -> str:
    body = "".join(
        f'<Relationship Id="{rid}" '
        'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/image" '
        f'Target="{target}"/>'
        for rid, target in targets.items()
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
        f"{body}</Relationships>"
    )


def add_drawing(
    path: Path,
    anchors: list[str],
    targets: dict[str, str],
    media: dict[str, bytes],
    drawing_part: str = "xl/drawings/drawing1.xml",
) -> Path:
    """Append drawing / rels / media parts to an existing .xlsx archive."""
    rels_part = drawing_part.replace("drawings/", "drawings/_rels/") + ".rels"
    with zipfile.ZipFile(path, "a") as zf:
        zf.writestr(drawing_part, drawing_xml(anchors))
        zf.writestr(rels_part, rels_xml(targets))
        for name, content in media.items():
            zf.writestr(f"xl/media/{name}", content, compress_type=zipfile.ZIP_STORED)
    return path


def corrupt_stored_bytes(path: Path, payload: bytes) -> Path:
    """Flip one byte of a member stored uncompressed so its CRC no longer matches."""
    data = bytearray(path.read_bytes())
    at = data.find(payload)
    assert at >= 0 and data.find(payload, at + 1) < 0, "payload must appear exactly once"
    data[at + len(payload) // 2] ^= 0xFF
    path.write_bytes(bytes(data))
    return path


OFFER_HEADER = [
    "SL", "Reg Date", "Company", "Location", "Department", "Contact Person",
    "Contact Number", "E-Mail", "Machine Serial Number", "Product Type", "Lead",
    "Offer Reference Number", "Offer Reference Date", "Offer Value", "Offer Month",
    "PO Expected Month", "Probabality", "PO Number", "PO Date", "PO Value",
    "PO Received Month", "Open Funnel", "Remarks",
]


def offer_row(
    sl: Any = None,
    reg_date: Any = None,
    company: Any = None,
    serial: Any = None,
    reference: Any = None,
    **extra: Any,
) -> list[Any]:
    values = {
        "SL": sl,
        "Reg Date": reg_date,
        "Company": company,
        "Machine Serial Number": serial,
        "Offer Reference Number": reference,
    }
    mapping = {
        "location": "Location",
        "contact_person": "Contact Person",
        "contact_number": "Contact Number",
        "email": "E-Mail",
        "product_type": "Product Type",
        "lead": "Lead",
        "offer_value": "Offer Value",
        "offer_month": "Offer Month",
        "po_expected": "PO Expected Month",
        "probability": "Probabality",
        "po_number": "PO Number",
        "po_value": "PO Value",
        "open_funnel": "Open Funnel",
        "remarks": "Remarks",
    }
    for key, value in extra.items():
        values[mapping[key]] = value
    return [values.get(col) for col in OFFER_HEADER]


CATALOG_HEADER = [
    "HSN Code", "Product Name", "Part ID", "Image and brochures of product",
    "(Use/Application of product)", "Model Specification", "Manufacturing Unit",
    "Ratings/Technical sheet",
]


# -- in-memory store -----------------------------------------------------------

class FakeStore:
    """Dict-backed stand-in for crm_import.db.store.Store.

    `fail_on` maps an operation name to a predicate over its arguments; when
    the predicate is true the call raises StoreError (constraint violation).
    """

    def __init__(self, actors: dict[int, Actor] | None = None) -> None:
        self.actors = actors if actors is not None else {1: Actor(1, "Admin", "admin@example.com")}
        self._ids = itertools.count(1)
        self.customers: dict[int, dict[str, Any]] = {}
        self.contacts: dict[int, dict[str, Any]] = {}
        self.assets: dict[int, dict[str, Any]] = {}
        self.offers: dict[int, dict[str, Any]] = {}
        self.offer_assets: set[tuple[int, int]] = set()
        self.catalog: dict[int, dict[str, Any]] = {}
        self.fail_on: dict[str, Any] = {}
        self.calls: list[str] = []
        self.closed = False

    def _maybe_fail(self, op: str, *args: Any) -> None:
        self.calls.append(op)
        pred = self.fail_on.get(op)
        if pred is not None and pred(*args):
            raise StoreError(f"{op} rejected")

    def close(self) -> None:
        self.closed = True

    def find_actor(self, user_id: int) -> Actor | None:
        return self.actors.get(user_id)

    def find_customer(self, company: str, zone_id: int) -> int | None:
        for cid, c in self.customers.items():
            if c["companyName"].lower() == company.lower() and c["serviceZoneId"] == zone_id:
                return cid
        return None

    def create_customer(self, company, zone_id, address, actor_id) -> int:
        self._maybe_fail("create_customer", company, zone_id)
        cid = next(self._ids)
        self.customers[cid] = {
            "companyName": company, "serviceZoneId": zone_id, "address": address,
            "createdById": actor_id,
        }
        return cid

    def find_contact(self, customer_id: int, phone: str) -> int | None:
        for cid, c in self.contacts.items():
            if c["customerId"] == customer_id and c["phone"] == phone:
                return cid
        return None

    def create_contact(self, customer_id, phone, name, email, actor_id) -> int:
        self._maybe_fail("create_contact", customer_id, phone)
        cid = next(self._ids)
        self.contacts[cid] = {
            "customerId": customer_id, "phone": phone, "name": name, "email": email, "actorId": actor_id,
        }
        return cid

    def find_asset_by_serial(self, serial: str) -> int | None:
        for aid, a in self.assets.items():
            if a["serialNo"] == serial:
                return aid
        return None

    def create_asset(self, serial, customer_id, actor_id) -> int:
        self._maybe_fail("create_asset", serial)
        aid = next(self._ids)
        self.assets[aid] = {"serialNo": serial, "customerId": customer_id, "actorId": actor_id}
        return aid

    def find_offer_by_reference(self, reference: str) -> int | None:
        for oid, o in self.offers.items():
            if o["offerReferenceNumber"] == reference:
                return oid
        return None

    def create_offer(self, values) -> int:
        self._maybe_fail("create_offer", values)
        if self.find_offer_by_reference(values["offerReferenceNumber"]) is not None:
            raise StoreError("duplicate key value violates unique constraint")
        oid = next(self._ids)
        self.offers[oid] = dict(values)
        return oid

    def link_offer_asset(self, offer_id: int, asset_id: int) -> bool:
        pair = (offer_id, asset_id)
        if pair in self.offer_assets:
            return False
        self.offer_assets.add(pair)
        return True

    def find_catalog_item(self, part_number: str) -> int | None:
        for iid, item in self.catalog.items():
            if item["partNumber"] == part_number:
                return iid
        return None

    def create_catalog_item(self, values) -> int:
        self._maybe_fail("create_catalog_item", values)
        iid = next(self._ids)
        self.catalog[iid] = dict(values)
        return iid

    def update_catalog_item_image(self, item_id: int, image_url: str) -> None:
        self._maybe_fail("update_catalog_item_image", item_id)
        self.catalog[item_id]["imageUrl"] = image_url

    def list_catalog_item_ids(self) -> list[int]:
        return sorted(self.catalog)

    def delete_all_catalog_items(self) -> tuple[int, int]:
        count = len(self.catalog)
        self.catalog.clear()
        return 0, count


