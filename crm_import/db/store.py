from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import psycopg2
from psycopg2 import sql

"""Relational store client.

Thin find/create layer over the CRM's PostgreSQL schema (Prisma-managed, so
table and column names are quoted CamelCase). Every statement runs on one
connection in autocommit mode: a record's writes are committed as they
happen, and re-running an import relies on natural-key lookups rather than on
transactions to stay idempotent.

The store does not retry. Constraint violations and other driver errors are
wrapped in StoreError and surface to the caller for the current record only.
"""

__all__ = [
    "Actor",
    "Store",
    "StoreError",
]

logger = logging.getLogger(__name__)


class StoreError(Exception):
    pass


@dataclass(frozen=True)
class Actor:
    id: int
    name: str | None
    email: str | None

    @property
    def label(self) -> str:
        return self.name or self.email or f"user#{self.id}"


class Store:
    """Find/create operations used by the import pipeline.

    The connection is injected (see crm_import.db.connection.open_store) and
    closed by close(); the store never opens connections itself.
    """

    def __init__(self, conn: Any) -> None:
        self._conn = conn
        self._closed = False

    # -- plumbing ---------------------------------------------------------

    def _fetchone(self, query: Any, params: Sequence[Any] = ()) -> tuple[Any, ...] | None:
        try:
            with self._conn.cursor() as cur:
                cur.execute(query, params)
                return cur.fetchone()
        except psycopg2.Error as e:
            raise StoreError(str(e).strip()) from e

    def _fetchall(self, query: Any, params: Sequence[Any] = ()) -> list[tuple[Any, ...]]:
        try:
            with self._conn.cursor() as cur:
                cur.execute(query, params)
                return cur.fetchall()
        except psycopg2.Error as e:
            raise StoreError(str(e).strip()) from e

    def _execute(self, query: Any, params: Sequence[Any] = ()) -> int:
        try:
            with self._conn.cursor() as cur:
                cur.execute(query, params)
                return cur.rowcount
        except psycopg2.Error as e:
            raise StoreError(str(e).strip()) from e

    def _insert(self, table: str, values: Mapping[str, Any]) -> int:
        cols = list(values)
        query = sql.SQL(
            'INSERT INTO {table} ({cols}, "createdAt", "updatedAt") '
            "VALUES ({vals}, NOW(), NOW()) RETURNING id"
        ).format(
            table=sql.Identifier(table),
            cols=sql.SQL(", ").join(sql.Identifier(c) for c in cols),
            vals=sql.SQL(", ").join(sql.Placeholder() for _ in cols),
        )
        row = self._fetchone(query, [values[c] for c in cols])
        if row is None:  # pragma: no cover - RETURNING always yields a row
            raise StoreError(f"insert into {table} returned no id")
        logger.debug("insert %s id=%s", table, row[0])
        return row[0]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._conn.close()
        except psycopg2.Error as e:  # pragma: no cover
            logger.warning("error closing store connection: %s", e)

    @property
    def closed(self) -> bool:
        return self._closed

    # -- actor ------------------------------------------------------------

    def find_actor(self, user_id: int) -> Actor | None:
        row = self._fetchone('SELECT id, name, email FROM "User" WHERE id = %s', (user_id,))
        return Actor(*row) if row else None

    # -- customer / contact / asset ---------------------------------------

    def find_customer(self, company: str, zone_id: int) -> int | None:
        row = self._fetchone(
            'SELECT id FROM "Customer" '
            'WHERE lower("companyName") = lower(%s) AND "serviceZoneId" = %s '
            "ORDER BY id LIMIT 1",
            (company, zone_id),
        )
        return row[0] if row else None

    def create_customer(
        self, company: str, zone_id: int, address: str | None, actor_id: int
    ) -> int:
        return self._insert(
            "Customer",
            {
                "companyName": company,
                "address": address,
                "serviceZoneId": zone_id,
                "isActive": True,
                "createdById": actor_id,
                "updatedById": actor_id,
            },
        )

    def find_contact(self, customer_id: int, phone: str) -> int | None:
        row = self._fetchone(
            'SELECT id FROM "Contact" WHERE "customerId" = %s AND phone = %s ORDER BY id LIMIT 1',
            (customer_id, phone),
        )
        return row[0] if row else None

    def create_contact(
        self, customer_id: int, phone: str, name: str, email: str | None, actor_id: int
    ) -> int:
        # Contact テーブルに作成者列はないのでログにのみ残す
        contact_id = self._insert(
            "Contact",
            {
                "name": name,
                "contactPersonName": name,
                "phone": phone,
                "contactNumber": phone,
                "email": email,
                "customerId": customer_id,
            },
        )
        logger.debug("contact id=%s created by actor_id=%s", contact_id, actor_id)
        return contact_id

    def find_asset_by_serial(self, serial: str) -> int | None:
        row = self._fetchone('SELECT id FROM "Asset" WHERE "serialNo" = %s LIMIT 1', (serial,))
        return row[0] if row else None

    def create_asset(self, serial: str, customer_id: int, actor_id: int) -> int:
        asset_id = self._insert(
            "Asset",
            {
                "machineId": serial,
                "serialNo": serial,
                "status": "ACTIVE",
                "customerId": customer_id,
            },
        )
        logger.debug("asset %s id=%s created by actor_id=%s", serial, asset_id, actor_id)
        return asset_id

    # -- offer --------------------------------------------------------------

    def find_offer_by_reference(self, reference: str) -> int | None:
        row = self._fetchone(
            'SELECT id FROM "Offer" WHERE "offerReferenceNumber" = %s', (reference,)
        )
        return row[0] if row else None

    def create_offer(self, values: Mapping[str, Any]) -> int:
        return self._insert("Offer", values)

    def link_offer_asset(self, offer_id: int, asset_id: int) -> bool:
        """Idempotent pair upsert; True when a new link row was written."""
        count = self._execute(
            'INSERT INTO "OfferAsset" ("offerId", "assetId") '
            "VALUES (%s, %s) "
            'ON CONFLICT ("offerId", "assetId") DO NOTHING',
            (offer_id, asset_id),
        )
        return count > 0

    # -- catalog (spare parts) ---------------------------------------------

    def find_catalog_item(self, part_number: str) -> int | None:
        row = self._fetchone(
            'SELECT id FROM "SparePart" WHERE "partNumber" = %s', (part_number,)
        )
        return row[0] if row else None

    def create_catalog_item(self, values: Mapping[str, Any]) -> int:
        return self._insert("SparePart", values)

    def update_catalog_item_image(self, item_id: int, image_url: str) -> None:
        self._execute(
            'UPDATE "SparePart" SET "imageUrl" = %s, "updatedAt" = NOW() WHERE id = %s',
            (image_url, item_id),
        )

    def list_catalog_item_ids(self) -> list[int]:
        """Catalog item ids in creation order."""
        rows = self._fetchall('SELECT id FROM "SparePart" ORDER BY "createdAt", id')
        return [r[0] for r in rows]

    def delete_all_catalog_items(self) -> tuple[int, int]:
        """Delete every catalog item and its offer links; returns (links, items)."""
        links = self._execute('DELETE FROM "OfferSparePart"')
        items = self._execute('DELETE FROM "SparePart"')
        return links, items
