# Overview: Unit Store Accessor; typed reads/writes of products, units and sale references.

"""
Unit Store Accessor

The only module that talks to the database. Services receive a UnitStore and
work exclusively with the frozen records from `stockrecon.domain`, which is
what lets the lifecycle, stock, integrity and repair logic run against an
in-memory store in tests.

WRITE SEMANTICS:
- Every write method is its own database transaction (commit per call).
  Multi-step atomicity is NOT provided here; callers that need it compose
  steps through the TransactionOrchestrator.
- Lock/optimistic-concurrency failures are retried (run_with_retry).
- Any other driver failure is rolled back and re-raised as PersistenceError
  carrying the operation name and identifiers, chained to the original error.
- (product_id, serial_number) violations raise DuplicateSerialError.

READ SEMANTICS:
- Missing rows return None / empty lists; driver failures raise PersistenceError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..domain import (
    ProductRecord,
    SaleItemReference,
    SaleReference,
    UnitEvent,
    UnitStatus,
    UnitRecord,
    UNIT_STATUS_AVAILABLE,
)
from ..errors import DuplicateSerialError, NotFoundError, PersistenceError
from ..extensions import db
from ..models import (
    BarcodeRegistration,
    BarcodeSequence,
    Product,
    ProductUnit,
    Sale,
    SaleItem,
    UnitAuditEvent,
)
from .concurrency import lock_for_update, run_with_retry


PRODUCT_WRITABLE_FIELDS = {
    "brand", "model", "category", "stock", "threshold", "has_serial",
    "price_cents", "min_price_cents", "max_price_cents",
}

UNIT_WRITABLE_FIELDS = {
    "product_id", "serial_number", "barcode", "status",
    "price_cents", "min_price_cents", "max_price_cents",
    "color", "storage", "ram", "battery_level",
}


class UnitStore(ABC):
    """Persistence boundary for the reconciliation core."""

    # -- products -----------------------------------------------------------

    @abstractmethod
    def get_product(self, product_id: int) -> Optional[ProductRecord]: ...

    @abstractmethod
    def list_serialized_products(self) -> list[ProductRecord]: ...

    @abstractmethod
    def insert_product(self, data: dict) -> ProductRecord: ...

    @abstractmethod
    def delete_product(self, product_id: int) -> None: ...

    @abstractmethod
    def update_product_stock(self, product_id: int, value: int) -> None: ...

    # -- units --------------------------------------------------------------

    @abstractmethod
    def get_product_units(self, product_id: int, status: UnitStatus | None = None) -> list[UnitRecord]: ...

    @abstractmethod
    def get_unit(self, unit_id: int) -> Optional[UnitRecord]: ...

    @abstractmethod
    def find_unit(self, product_id: int, serial_number: str) -> Optional[UnitRecord]: ...

    @abstractmethod
    def find_units_by_serial(self, serial_number: str) -> list[UnitRecord]: ...

    @abstractmethod
    def list_units(self, product_id: int | None = None) -> list[UnitRecord]: ...

    @abstractmethod
    def list_units_by_status(self, status: UnitStatus) -> list[UnitRecord]: ...

    @abstractmethod
    def list_units_missing_barcode(self) -> list[UnitRecord]: ...

    @abstractmethod
    def insert_product_unit(self, data: dict) -> UnitRecord: ...

    @abstractmethod
    def update_product_unit(self, unit_id: int, fields: dict, *, event: UnitEvent | None = None) -> UnitRecord: ...

    @abstractmethod
    def delete_product_unit(self, unit_id: int, *, event: UnitEvent | None = None) -> None: ...

    @abstractmethod
    def count_available_units(self, product_id: int) -> int: ...

    @abstractmethod
    def available_unit_counts(self) -> list[tuple[ProductRecord, int]]:
        """Every serialized product (including those with no units) with its available-unit count."""

    @abstractmethod
    def list_orphaned_units(self) -> list[UnitRecord]: ...

    @abstractmethod
    def append_unit_event(self, event: UnitEvent) -> None: ...

    # -- sales (read-only) --------------------------------------------------

    @abstractmethod
    def query_sales_by_serial(self, product_id: int, serial_number: str) -> list[SaleReference]: ...

    @abstractmethod
    def list_serial_sale_items(self) -> list[SaleItemReference]: ...

    # -- barcodes -----------------------------------------------------------

    @abstractmethod
    def next_barcode_number(self, kind: str) -> int: ...

    @abstractmethod
    def register_barcode(self, barcode: str, entity_type: str, entity_id: int, payload: dict) -> None: ...


def _is_duplicate_serial(exc: IntegrityError) -> bool:
    text = str(exc.orig) if exc.orig is not None else str(exc)
    return "uq_product_units_product_serial" in text or "product_units.serial_number" in text


class SqlUnitStore(UnitStore):
    """UnitStore backed by Flask-SQLAlchemy."""

    def __init__(self, session=None, *, retry_attempts: int = 3, retry_backoff: float = 0.1):
        self._session = session
        self._retry_attempts = retry_attempts
        self._retry_backoff = retry_backoff

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    # -- plumbing -----------------------------------------------------------

    def _read(self, operation: str, identifiers: dict, fn):
        try:
            return fn()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError(operation, identifiers, str(exc)) from exc

    def _write(self, operation: str, identifiers: dict, fn, *, duplicate_check: bool = False):
        def _op():
            result = fn()
            self.session.commit()
            return result() if callable(result) else result

        try:
            return run_with_retry(
                _op,
                session=self.session,
                attempts=self._retry_attempts,
                backoff_base=self._retry_backoff,
            )
        except IntegrityError as exc:
            self.session.rollback()
            if duplicate_check and _is_duplicate_serial(exc):
                raise DuplicateSerialError(
                    operation, identifiers, "serial number already exists for this product"
                ) from exc
            raise PersistenceError(operation, identifiers, str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError(operation, identifiers, str(exc)) from exc
        except NotFoundError:
            self.session.rollback()
            raise

    def _add_event(self, event: UnitEvent | None) -> None:
        if event is None:
            return
        self.session.add(UnitAuditEvent(
            unit_id=event.unit_id,
            product_id=event.product_id,
            event_type=event.event_type,
            from_status=event.from_status,
            to_status=event.to_status,
            note=event.note,
            payload=event.payload or None,
        ))

    # -- products -----------------------------------------------------------

    def get_product(self, product_id: int) -> Optional[ProductRecord]:
        def _fn():
            product = self.session.get(Product, product_id)
            return product.to_record() if product else None
        return self._read("get_product", {"product_id": product_id}, _fn)

    def list_serialized_products(self) -> list[ProductRecord]:
        def _fn():
            rows = self.session.query(Product).filter(Product.has_serial.is_(True)).order_by(Product.id).all()
            return [p.to_record() for p in rows]
        return self._read("list_serialized_products", {}, _fn)

    def insert_product(self, data: dict) -> ProductRecord:
        unknown = set(data) - PRODUCT_WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown product fields: {', '.join(sorted(unknown))}")

        def _fn():
            product = Product(**data)
            self.session.add(product)
            self.session.flush()
            return product.to_record
        return self._write("insert_product", {"brand": data.get("brand"), "model": data.get("model")}, _fn)

    def delete_product(self, product_id: int) -> None:
        def _fn():
            product = self.session.get(Product, product_id)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found")
            self.session.delete(product)
        self._write("delete_product", {"product_id": product_id}, _fn)

    def update_product_stock(self, product_id: int, value: int) -> None:
        def _fn():
            product = lock_for_update(self.session.query(Product).filter_by(id=product_id)).first()
            if product is None:
                raise NotFoundError(f"Product {product_id} not found")
            product.stock = value
        self._write("update_product_stock", {"product_id": product_id, "stock": value}, _fn)

    # -- units --------------------------------------------------------------

    def get_product_units(self, product_id: int, status: UnitStatus | None = None) -> list[UnitRecord]:
        def _fn():
            q = self.session.query(ProductUnit).filter(ProductUnit.product_id == product_id)
            if status is not None:
                q = q.filter(ProductUnit.status == status)
            return [u.to_record() for u in q.order_by(ProductUnit.id).all()]
        return self._read("get_product_units", {"product_id": product_id}, _fn)

    def get_unit(self, unit_id: int) -> Optional[UnitRecord]:
        def _fn():
            unit = self.session.get(ProductUnit, unit_id)
            return unit.to_record() if unit else None
        return self._read("get_unit", {"unit_id": unit_id}, _fn)

    def find_unit(self, product_id: int, serial_number: str) -> Optional[UnitRecord]:
        def _fn():
            unit = self.session.query(ProductUnit).filter_by(
                product_id=product_id,
                serial_number=serial_number,
            ).first()
            return unit.to_record() if unit else None
        return self._read("find_unit", {"product_id": product_id, "serial_number": serial_number}, _fn)

    def find_units_by_serial(self, serial_number: str) -> list[UnitRecord]:
        def _fn():
            rows = self.session.query(ProductUnit).filter_by(serial_number=serial_number).order_by(ProductUnit.id).all()
            return [u.to_record() for u in rows]
        return self._read("find_units_by_serial", {"serial_number": serial_number}, _fn)

    def list_units(self, product_id: int | None = None) -> list[UnitRecord]:
        def _fn():
            q = self.session.query(ProductUnit)
            if product_id is not None:
                q = q.filter(ProductUnit.product_id == product_id)
            return [u.to_record() for u in q.order_by(ProductUnit.id).all()]
        return self._read("list_units", {"product_id": product_id}, _fn)

    def list_units_by_status(self, status: UnitStatus) -> list[UnitRecord]:
        def _fn():
            rows = self.session.query(ProductUnit).filter_by(status=status).order_by(ProductUnit.id).all()
            return [u.to_record() for u in rows]
        return self._read("list_units_by_status", {"status": status}, _fn)

    def list_units_missing_barcode(self) -> list[UnitRecord]:
        def _fn():
            rows = self.session.query(ProductUnit).filter(
                db.or_(ProductUnit.barcode.is_(None), ProductUnit.barcode == "")
            ).order_by(ProductUnit.id).all()
            return [u.to_record() for u in rows]
        return self._read("list_units_missing_barcode", {}, _fn)

    def insert_product_unit(self, data: dict) -> UnitRecord:
        unknown = set(data) - UNIT_WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown unit fields: {', '.join(sorted(unknown))}")

        def _fn():
            unit = ProductUnit(**data)
            self.session.add(unit)
            self.session.flush()
            return unit.to_record
        return self._write(
            "insert_product_unit",
            {"product_id": data.get("product_id"), "serial_number": data.get("serial_number")},
            _fn,
            duplicate_check=True,
        )

    def update_product_unit(self, unit_id: int, fields: dict, *, event: UnitEvent | None = None) -> UnitRecord:
        unknown = set(fields) - UNIT_WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown unit fields: {', '.join(sorted(unknown))}")

        def _fn():
            unit = lock_for_update(self.session.query(ProductUnit).filter_by(id=unit_id)).first()
            if unit is None:
                raise NotFoundError(f"Unit {unit_id} not found")
            for key, value in fields.items():
                setattr(unit, key, value)
            self._add_event(event)
            self.session.flush()
            return unit.to_record
        return self._write("update_product_unit", {"unit_id": unit_id}, _fn, duplicate_check=True)

    def delete_product_unit(self, unit_id: int, *, event: UnitEvent | None = None) -> None:
        def _fn():
            unit = self.session.get(ProductUnit, unit_id)
            if unit is None:
                raise NotFoundError(f"Unit {unit_id} not found")
            self.session.delete(unit)
            self._add_event(event)
        self._write("delete_product_unit", {"unit_id": unit_id}, _fn)

    def count_available_units(self, product_id: int) -> int:
        def _fn():
            count = self.session.query(func.count(ProductUnit.id)).filter(
                ProductUnit.product_id == product_id,
                ProductUnit.status == UNIT_STATUS_AVAILABLE,
            ).scalar()
            return int(count or 0)
        return self._read("count_available_units", {"product_id": product_id}, _fn)

    def available_unit_counts(self) -> list[tuple[ProductRecord, int]]:
        def _fn():
            available = func.coalesce(
                func.sum(case((ProductUnit.status == UNIT_STATUS_AVAILABLE, 1), else_=0)),
                0,
            )
            rows = (
                self.session.query(Product, available)
                .outerjoin(ProductUnit, ProductUnit.product_id == Product.id)
                .filter(Product.has_serial.is_(True))
                .group_by(Product.id)
                .order_by(Product.id)
                .all()
            )
            return [(product.to_record(), int(count or 0)) for product, count in rows]
        return self._read("available_unit_counts", {}, _fn)

    def list_orphaned_units(self) -> list[UnitRecord]:
        def _fn():
            rows = (
                self.session.query(ProductUnit)
                .outerjoin(Product, Product.id == ProductUnit.product_id)
                .filter(Product.id.is_(None))
                .order_by(ProductUnit.id)
                .all()
            )
            return [u.to_record() for u in rows]
        return self._read("list_orphaned_units", {}, _fn)

    def append_unit_event(self, event: UnitEvent) -> None:
        def _fn():
            self._add_event(event)
        self._write("append_unit_event", {"unit_id": event.unit_id, "event_type": event.event_type}, _fn)

    # -- sales (read-only) --------------------------------------------------

    def query_sales_by_serial(self, product_id: int, serial_number: str) -> list[SaleReference]:
        def _fn():
            rows = (
                self.session.query(Sale, SaleItem)
                .join(SaleItem, SaleItem.sale_id == Sale.id)
                .filter(
                    SaleItem.product_id == product_id,
                    SaleItem.serial_number == serial_number,
                )
                .order_by(Sale.id)
                .all()
            )
            return [
                SaleReference(
                    sale_id=sale.id,
                    sale_number=sale.sale_number,
                    product_id=item.product_id,
                    serial_number=item.serial_number,
                    sale_status=sale.status,
                )
                for sale, item in rows
            ]
        return self._read(
            "query_sales_by_serial",
            {"product_id": product_id, "serial_number": serial_number},
            _fn,
        )

    def list_serial_sale_items(self) -> list[SaleItemReference]:
        def _fn():
            rows = (
                self.session.query(SaleItem, Sale, Product.has_serial, ProductUnit.id)
                .join(Sale, SaleItem.sale_id == Sale.id)
                .outerjoin(Product, Product.id == SaleItem.product_id)
                .outerjoin(
                    ProductUnit,
                    db.and_(
                        ProductUnit.product_id == SaleItem.product_id,
                        ProductUnit.serial_number == SaleItem.serial_number,
                    ),
                )
                .filter(SaleItem.serial_number.isnot(None), SaleItem.serial_number != "")
                .order_by(SaleItem.id)
                .all()
            )
            return [
                SaleItemReference(
                    sale_item_id=item.id,
                    sale_id=sale.id,
                    sale_number=sale.sale_number,
                    sale_status=sale.status,
                    product_id=item.product_id,
                    serial_number=item.serial_number,
                    product_has_serial=None if has_serial is None else bool(has_serial),
                    unit_id=unit_id,
                )
                for item, sale, has_serial, unit_id in rows
            ]
        return self._read("list_serial_sale_items", {}, _fn)

    # -- barcodes -----------------------------------------------------------

    def next_barcode_number(self, kind: str) -> int:
        """
        Atomically allocate the next counter value for `kind`.

        Same update-then-insert pattern as document numbering: bump the row if
        it exists, otherwise create it; a concurrent creator loses on the
        unique constraint and falls back to the bump.
        """
        stmt = (
            update(BarcodeSequence)
            .where(BarcodeSequence.kind == kind)
            .values(next_number=BarcodeSequence.next_number + 1)
        )

        def _current() -> int:
            current = self.session.query(BarcodeSequence.next_number).filter_by(kind=kind).scalar()
            return current - 1

        def _fn():
            result = self.session.execute(stmt)
            if result.rowcount:
                self.session.flush()
                return _current()

            self.session.add(BarcodeSequence(kind=kind, next_number=2))
            try:
                self.session.flush()
                return 1
            except IntegrityError:
                self.session.rollback()
                result = self.session.execute(stmt)
                if not result.rowcount:
                    raise
                self.session.flush()
                return _current()

        return self._write("next_barcode_number", {"kind": kind}, _fn)

    def register_barcode(self, barcode: str, entity_type: str, entity_id: int, payload: dict) -> None:
        def _fn():
            self.session.add(BarcodeRegistration(
                barcode=barcode,
                entity_type=entity_type,
                entity_id=entity_id,
                payload=payload,
            ))
        self._write("register_barcode", {"barcode": barcode, "entity_id": entity_id}, _fn)
