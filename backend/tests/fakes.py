# Overview: In-memory UnitStore used by the service tests, with failure injection.

from __future__ import annotations

import itertools
from dataclasses import replace
from typing import Callable, Optional

from stockrecon.domain import (
    ProductRecord,
    SaleItemReference,
    SaleReference,
    UnitEvent,
    UnitRecord,
    UNIT_STATUS_AVAILABLE,
)
from stockrecon.errors import DuplicateSerialError, NotFoundError, PersistenceError
from stockrecon.services.unit_store import PRODUCT_WRITABLE_FIELDS, UNIT_WRITABLE_FIELDS, UnitStore
from stockrecon.time_utils import utcnow


class InMemoryUnitStore(UnitStore):
    """
    Dict-backed UnitStore with the same error contract as SqlUnitStore.

    fail("method") makes every later call of that method raise
    PersistenceError; pass when=... to fail only matching calls.
    """

    def __init__(self):
        self.products: dict[int, ProductRecord] = {}
        self.units: dict[int, UnitRecord] = {}
        self.sales: dict[int, dict] = {}
        self.sale_items: list[dict] = []
        self.events: list[UnitEvent] = []
        self.sequences: dict[str, int] = {}
        self.registrations: dict[str, dict] = {}
        self.calls: list[str] = []
        self._failures: dict[str, Optional[Callable[..., bool]]] = {}
        self._product_ids = itertools.count(1)
        self._unit_ids = itertools.count(1)
        self._sale_ids = itertools.count(1)
        self._sale_item_ids = itertools.count(1)

    # -- test helpers -------------------------------------------------------

    def fail(self, method: str, when: Optional[Callable[..., bool]] = None) -> None:
        self._failures[method] = when

    def heal(self, method: str | None = None) -> None:
        if method is None:
            self._failures.clear()
        else:
            self._failures.pop(method, None)

    def _enter(self, method: str, **identifiers) -> None:
        self.calls.append(method)
        if method in self._failures:
            when = self._failures[method]
            if when is None or when(**identifiers):
                raise PersistenceError(method, identifiers, "injected failure")

    def add_product(self, brand="Apple", model="iPhone 13", *, stock=0, has_serial=True, **fields) -> ProductRecord:
        product = ProductRecord(
            id=next(self._product_ids),
            brand=brand,
            model=model,
            stock=stock,
            has_serial=has_serial,
            **fields,
        )
        self.products[product.id] = product
        return product

    def add_unit(self, product_id: int, serial: str, status: str = UNIT_STATUS_AVAILABLE, **fields) -> UnitRecord:
        """Raw insert, bypassing the lifecycle service (used to seed drift)."""
        now = utcnow()
        unit = UnitRecord(
            id=next(self._unit_ids),
            product_id=product_id,
            serial_number=serial,
            status=status,
            created_at=now,
            updated_at=now,
            **fields,
        )
        self.units[unit.id] = unit
        return unit

    def add_sale(self, product_id: int, serial: str | None, status: str = "completed", sale_number: str | None = None) -> int:
        sale_id = next(self._sale_ids)
        self.sales[sale_id] = {"sale_number": sale_number or f"S-{sale_id:04d}", "status": status}
        self.sale_items.append({
            "id": next(self._sale_item_ids),
            "sale_id": sale_id,
            "product_id": product_id,
            "serial_number": serial,
        })
        return sale_id

    def events_of(self, event_type: str) -> list[UnitEvent]:
        return [event for event in self.events if event.event_type == event_type]

    # -- products -----------------------------------------------------------

    def get_product(self, product_id):
        self._enter("get_product", product_id=product_id)
        return self.products.get(product_id)

    def list_serialized_products(self):
        self._enter("list_serialized_products")
        return [p for p in self.products.values() if p.has_serial]

    def insert_product(self, data):
        unknown = set(data) - PRODUCT_WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown product fields: {', '.join(sorted(unknown))}")
        self._enter("insert_product", brand=data.get("brand"), model=data.get("model"))
        fields = {"stock": 0, "has_serial": False, **data}
        product = ProductRecord(id=next(self._product_ids), **fields)
        self.products[product.id] = product
        return product

    def delete_product(self, product_id):
        self._enter("delete_product", product_id=product_id)
        if product_id not in self.products:
            raise NotFoundError(f"Product {product_id} not found")
        del self.products[product_id]

    def update_product_stock(self, product_id, value):
        self._enter("update_product_stock", product_id=product_id, stock=value)
        if product_id not in self.products:
            raise NotFoundError(f"Product {product_id} not found")
        self.products[product_id] = replace(self.products[product_id], stock=value)

    # -- units --------------------------------------------------------------

    def get_product_units(self, product_id, status=None):
        self._enter("get_product_units", product_id=product_id)
        return [
            u for u in self.units.values()
            if u.product_id == product_id and (status is None or u.status == status)
        ]

    def get_unit(self, unit_id):
        self._enter("get_unit", unit_id=unit_id)
        return self.units.get(unit_id)

    def find_unit(self, product_id, serial_number):
        self._enter("find_unit", product_id=product_id, serial_number=serial_number)
        for unit in self.units.values():
            if unit.product_id == product_id and unit.serial_number == serial_number:
                return unit
        return None

    def find_units_by_serial(self, serial_number):
        self._enter("find_units_by_serial", serial_number=serial_number)
        return [u for u in self.units.values() if u.serial_number == serial_number]

    def list_units(self, product_id=None):
        self._enter("list_units", product_id=product_id)
        return [u for u in self.units.values() if product_id is None or u.product_id == product_id]

    def list_units_by_status(self, status):
        self._enter("list_units_by_status", status=status)
        return [u for u in self.units.values() if u.status == status]

    def list_units_missing_barcode(self):
        self._enter("list_units_missing_barcode")
        return [u for u in self.units.values() if not u.barcode]

    def _check_unique(self, operation, unit_id, product_id, serial_number, barcode):
        for other in self.units.values():
            if other.id == unit_id:
                continue
            if other.product_id == product_id and other.serial_number == serial_number:
                raise DuplicateSerialError(
                    operation,
                    {"product_id": product_id, "serial_number": serial_number},
                    "serial number already exists for this product",
                )
            if barcode and other.barcode == barcode:
                raise PersistenceError(operation, {"barcode": barcode}, "barcode already in use")

    def insert_product_unit(self, data):
        unknown = set(data) - UNIT_WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown unit fields: {', '.join(sorted(unknown))}")
        self._enter("insert_product_unit", product_id=data.get("product_id"), serial_number=data.get("serial_number"))
        self._check_unique(
            "insert_product_unit", None, data["product_id"], data["serial_number"], data.get("barcode"),
        )
        now = utcnow()
        fields = {"status": UNIT_STATUS_AVAILABLE, **data}
        unit = UnitRecord(id=next(self._unit_ids), created_at=now, updated_at=now, **fields)
        self.units[unit.id] = unit
        return unit

    def update_product_unit(self, unit_id, fields, *, event=None):
        unknown = set(fields) - UNIT_WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown unit fields: {', '.join(sorted(unknown))}")
        self._enter("update_product_unit", unit_id=unit_id, fields=fields)
        if unit_id not in self.units:
            raise NotFoundError(f"Unit {unit_id} not found")
        updated = replace(self.units[unit_id], updated_at=utcnow(), **fields)
        self._check_unique(
            "update_product_unit", unit_id, updated.product_id, updated.serial_number,
            fields.get("barcode"),
        )
        self.units[unit_id] = updated
        if event is not None:
            self.events.append(event)
        return updated

    def delete_product_unit(self, unit_id, *, event=None):
        self._enter("delete_product_unit", unit_id=unit_id)
        if unit_id not in self.units:
            raise NotFoundError(f"Unit {unit_id} not found")
        del self.units[unit_id]
        if event is not None:
            self.events.append(event)

    def count_available_units(self, product_id):
        self._enter("count_available_units", product_id=product_id)
        return sum(1 for u in self.units.values() if u.product_id == product_id and u.status == UNIT_STATUS_AVAILABLE)

    def available_unit_counts(self):
        self._enter("available_unit_counts")
        return [
            (product, sum(
                1 for u in self.units.values()
                if u.product_id == product.id and u.status == UNIT_STATUS_AVAILABLE
            ))
            for product in self.products.values()
            if product.has_serial
        ]

    def list_orphaned_units(self):
        self._enter("list_orphaned_units")
        return [u for u in self.units.values() if u.product_id not in self.products]

    def append_unit_event(self, event):
        self._enter("append_unit_event", unit_id=event.unit_id, event_type=event.event_type)
        self.events.append(event)

    # -- sales --------------------------------------------------------------

    def query_sales_by_serial(self, product_id, serial_number):
        self._enter("query_sales_by_serial", product_id=product_id, serial_number=serial_number)
        return [
            SaleReference(
                sale_id=item["sale_id"],
                sale_number=self.sales[item["sale_id"]]["sale_number"],
                product_id=item["product_id"],
                serial_number=item["serial_number"],
                sale_status=self.sales[item["sale_id"]]["status"],
            )
            for item in self.sale_items
            if item["product_id"] == product_id and item["serial_number"] == serial_number
        ]

    def list_serial_sale_items(self):
        self._enter("list_serial_sale_items")
        refs = []
        for item in self.sale_items:
            if not item["serial_number"]:
                continue
            sale = self.sales[item["sale_id"]]
            product = self.products.get(item["product_id"])
            refs.append(SaleItemReference(
                sale_item_id=item["id"],
                sale_id=item["sale_id"],
                sale_number=sale["sale_number"],
                sale_status=sale["status"],
                product_id=item["product_id"],
                serial_number=item["serial_number"],
                product_has_serial=None if product is None else product.has_serial,
                unit_id=next(
                    (u.id for u in self.units.values()
                     if u.product_id == item["product_id"] and u.serial_number == item["serial_number"]),
                    None,
                ),
            ))
        return refs

    # -- barcodes -----------------------------------------------------------

    def next_barcode_number(self, kind):
        self._enter("next_barcode_number", kind=kind)
        number = self.sequences.get(kind, 1)
        self.sequences[kind] = number + 1
        return number

    def register_barcode(self, barcode, entity_type, entity_id, payload):
        self._enter("register_barcode", barcode=barcode, entity_id=entity_id)
        if barcode in self.registrations:
            raise PersistenceError("register_barcode", {"barcode": barcode}, "barcode already registered")
        self.registrations[barcode] = {"entity_type": entity_type, "entity_id": entity_id, "payload": dict(payload)}
