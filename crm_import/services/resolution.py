from __future__ import annotations

import logging
from collections import Counter
from typing import Protocol

from ..models.entities import EntityKind, EntityReference

"""Entity resolution engine.

Maps descriptive record fields to ids of referenced entities with
find-or-create semantics:

    customer  (normalized company, zone id)
    contact   (customer id, phone)
    asset     serial number, global across customers
    catalog   part number, strictly unique (existing -> duplicate, no update)

Lookups are simple equality predicates against the store; the store's unique
constraints are the correctness backstop. The in-run cache only saves round
trips when a natural key repeats (same customer on many rows).

Lookup-then-create is not atomic, so the resolver must only ever be driven by
one record at a time (see SequentialImportSession).
"""

__all__ = [
    "EntityStore",
    "EntityResolver",
]

logger = logging.getLogger(__name__)


class EntityStore(Protocol):
    def find_customer(self, company: str, zone_id: int) -> int | None: ...
    def create_customer(self, company: str, zone_id: int, address: str | None, actor_id: int) -> int: ...
    def find_contact(self, customer_id: int, phone: str) -> int | None: ...
    def create_contact(
        self, customer_id: int, phone: str, name: str, email: str | None, actor_id: int
    ) -> int: ...
    def find_asset_by_serial(self, serial: str) -> int | None: ...
    def create_asset(self, serial: str, customer_id: int, actor_id: int) -> int: ...
    def find_catalog_item(self, part_number: str) -> int | None: ...


class EntityResolver:
    def __init__(self, store: EntityStore, actor_id: int, use_cache: bool = True) -> None:
        self.store = store
        self.actor_id = actor_id  # imported-by actor for audit columns
        self.use_cache = use_cache
        self._cache: dict[EntityReference, int] = {}
        self.created: Counter[EntityKind] = Counter()
        self.reused: Counter[EntityKind] = Counter()

    def _cached(self, ref: EntityReference) -> int | None:
        if not self.use_cache:
            return None
        found = self._cache.get(ref)
        if found is not None:
            self.reused[ref.kind] += 1
        return found

    def _remember(self, ref: EntityReference, entity_id: int, created: bool) -> int:
        if self.use_cache:
            self._cache[ref] = entity_id
        if created:
            self.created[ref.kind] += 1
            logger.debug("created %s %s -> id=%s", ref.kind.value, ref.natural_key, entity_id)
        else:
            self.reused[ref.kind] += 1
        return entity_id

    def resolve_customer(self, company: str, zone_id: int, address: str | None = None) -> int:
        ref = EntityReference.customer(company, zone_id)
        hit = self._cached(ref)
        if hit is not None:
            return hit
        found = self.store.find_customer(company, zone_id)
        if found is not None:
            return self._remember(ref, found, created=False)
        new_id = self.store.create_customer(company, zone_id, address or None, self.actor_id)
        return self._remember(ref, new_id, created=True)

    def resolve_contact(
        self, customer_id: int, phone: str, name: str, email: str | None = None
    ) -> int:
        ref = EntityReference.contact(customer_id, phone)
        hit = self._cached(ref)
        if hit is not None:
            return hit
        found = self.store.find_contact(customer_id, ref.natural_key[1])
        if found is not None:
            return self._remember(ref, found, created=False)
        new_id = self.store.create_contact(
            customer_id, ref.natural_key[1], name, email or None, self.actor_id
        )
        return self._remember(ref, new_id, created=True)

    def resolve_asset(self, serial: str, customer_id: int) -> int:
        """Serial is a global key: an asset found under another customer is reused."""
        ref = EntityReference.asset(serial)
        hit = self._cached(ref)
        if hit is not None:
            return hit
        serial_no = ref.natural_key[0]
        found = self.store.find_asset_by_serial(serial_no)
        if found is not None:
            return self._remember(ref, found, created=False)
        new_id = self.store.create_asset(serial_no, customer_id, self.actor_id)
        return self._remember(ref, new_id, created=True)

    def catalog_item_exists(self, part_number: str) -> bool:
        ref = EntityReference.catalog_item(part_number)
        if self.use_cache and ref in self._cache:
            return True
        found = self.store.find_catalog_item(ref.natural_key[0])
        if found is not None and self.use_cache:
            self._cache[ref] = found
        return found is not None

    def register_catalog_item(self, part_number: str, item_id: int) -> None:
        self._remember(EntityReference.catalog_item(part_number), item_id, created=True)
