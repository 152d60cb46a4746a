from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

"""Entity references used by the resolution engine.

An EntityReference identifies a referenced entity by natural key, not by the
store's internal id. The resolver caches resolved ids per reference for the
remainder of a run.
"""

__all__ = [
    "EntityKind",
    "EntityReference",
    "normalize_company",
]


class EntityKind(Enum):
    CUSTOMER = "customer"
    CONTACT = "contact"
    ASSET = "asset"
    CATALOG_ITEM = "catalog_item"


_WS = re.compile(r"\s+")


def normalize_company(name: str) -> str:
    """Whitespace-collapsed, case-folded company name used as part of the key."""
    return _WS.sub(" ", name).strip().casefold()


@dataclass(frozen=True)
class EntityReference:
    kind: EntityKind
    natural_key: tuple[Any, ...]

    @classmethod
    def customer(cls, company: str, zone_id: int) -> EntityReference:
        return cls(EntityKind.CUSTOMER, (normalize_company(company), zone_id))

    @classmethod
    def contact(cls, customer_id: int, phone: str) -> EntityReference:
        return cls(EntityKind.CONTACT, (customer_id, phone.strip()))

    @classmethod
    def asset(cls, serial: str) -> EntityReference:
        return cls(EntityKind.ASSET, (serial.strip(),))

    @classmethod
    def catalog_item(cls, part_number: str) -> EntityReference:
        return cls(EntityKind.CATALOG_ITEM, (part_number.strip(),))
