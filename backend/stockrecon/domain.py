# Overview: Value types passed between the store accessor and the services.

"""
Domain records (shared by value)

The store accessor converts ORM rows into these frozen records before handing
them to services, so the reconciliation logic never holds live ORM objects and
can run unchanged against an in-memory store.

TRACKING MODES:
- has_serial = False: Product.stock is the authoritative quantity.
- has_serial = True:  Product.stock is a cache of count(units where status='available').
                      Only the stock calculator writes it, and only by recomputation.

PRICES:
Stored as integer cents. Unit prices override product defaults (hybrid pricing).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional

from .time_utils import to_utc_z


UNIT_STATUS_AVAILABLE = "available"
UNIT_STATUS_RESERVED = "reserved"
UNIT_STATUS_SOLD = "sold"
UNIT_STATUS_DAMAGED = "damaged"

VALID_UNIT_STATUSES = {
    UNIT_STATUS_AVAILABLE,
    UNIT_STATUS_RESERVED,
    UNIT_STATUS_SOLD,
    UNIT_STATUS_DAMAGED,
}
UnitStatus = Literal["available", "reserved", "sold", "damaged"]

SALE_STATUS_COMPLETED = "completed"

SPEC_FIELDS = ("color", "storage", "ram", "battery_level")
PRICE_FIELDS = ("price_cents", "min_price_cents", "max_price_cents")


@dataclass(frozen=True)
class Pricing:
    price_cents: Optional[int] = None
    min_price_cents: Optional[int] = None
    max_price_cents: Optional[int] = None

    def resolve(self, override: "Pricing") -> "Pricing":
        """Per-field `override ?? self`."""
        return Pricing(
            price_cents=override.price_cents if override.price_cents is not None else self.price_cents,
            min_price_cents=(
                override.min_price_cents if override.min_price_cents is not None else self.min_price_cents
            ),
            max_price_cents=(
                override.max_price_cents if override.max_price_cents is not None else self.max_price_cents
            ),
        )


@dataclass(frozen=True)
class ProductRecord:
    id: int
    brand: str
    model: str
    stock: int
    has_serial: bool
    threshold: int = 0
    category: Optional[str] = None
    price_cents: Optional[int] = None
    min_price_cents: Optional[int] = None
    max_price_cents: Optional[int] = None

    @property
    def display_name(self) -> str:
        return f"{self.brand} {self.model}".strip()

    @property
    def pricing(self) -> Pricing:
        return Pricing(self.price_cents, self.min_price_cents, self.max_price_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "brand": self.brand,
            "model": self.model,
            "category": self.category,
            "stock": self.stock,
            "threshold": self.threshold,
            "has_serial": self.has_serial,
            "price_cents": self.price_cents,
            "min_price_cents": self.min_price_cents,
            "max_price_cents": self.max_price_cents,
        }


@dataclass(frozen=True)
class UnitRecord:
    id: int
    product_id: int
    serial_number: str
    status: UnitStatus
    barcode: Optional[str] = None
    price_cents: Optional[int] = None
    min_price_cents: Optional[int] = None
    max_price_cents: Optional[int] = None
    color: Optional[str] = None
    storage: Optional[int] = None
    ram: Optional[int] = None
    battery_level: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def specs(self) -> dict:
        return {name: getattr(self, name) for name in SPEC_FIELDS if getattr(self, name) is not None}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "serial_number": self.serial_number,
            "status": self.status,
            "barcode": self.barcode,
            "price_cents": self.price_cents,
            "min_price_cents": self.min_price_cents,
            "max_price_cents": self.max_price_cents,
            "color": self.color,
            "storage": self.storage,
            "ram": self.ram,
            "battery_level": self.battery_level,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


@dataclass(frozen=True)
class UnitEntry:
    """One serial number to be created, with optional per-unit overrides."""
    serial: str
    price_cents: Optional[int] = None
    min_price_cents: Optional[int] = None
    max_price_cents: Optional[int] = None
    color: Optional[str] = None
    storage: Optional[int] = None
    ram: Optional[int] = None
    battery_level: Optional[int] = None

    @property
    def pricing(self) -> Pricing:
        return Pricing(self.price_cents, self.min_price_cents, self.max_price_cents)

    @property
    def specs(self) -> dict:
        return {name: getattr(self, name) for name in SPEC_FIELDS if getattr(self, name) is not None}

    @classmethod
    def from_dict(cls, data: dict) -> "UnitEntry":
        serial = data.get("serial", data.get("serial_number"))
        return cls(
            serial=str(serial).strip() if serial is not None else "",
            price_cents=data.get("price_cents"),
            min_price_cents=data.get("min_price_cents"),
            max_price_cents=data.get("max_price_cents"),
            color=data.get("color"),
            storage=data.get("storage"),
            ram=data.get("ram"),
            battery_level=data.get("battery_level"),
        )


@dataclass(frozen=True)
class SaleReference:
    """Read-only view of a sale line that names a serial number."""
    sale_id: int
    sale_number: str
    product_id: int
    serial_number: str
    sale_status: str

    @property
    def is_completed(self) -> bool:
        return self.sale_status == SALE_STATUS_COMPLETED


@dataclass(frozen=True)
class SaleItemReference:
    """
    A sale item carrying a serial number, joined to its product.

    product_has_serial is None when the referenced product no longer exists;
    unit_id is None when no unit carries this (product_id, serial_number).
    """
    sale_item_id: int
    sale_id: int
    sale_number: str
    sale_status: str
    product_id: int
    serial_number: str
    product_has_serial: Optional[bool]
    unit_id: Optional[int] = None


@dataclass(frozen=True)
class UnitEvent:
    unit_id: int
    product_id: Optional[int]
    event_type: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    note: Optional[str] = None
    payload: dict[str, Any] = field(default_factory=dict)
