from __future__ import annotations

from ..extensions import db
from ..domain import ProductRecord, UnitRecord, UNIT_STATUS_AVAILABLE
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    TRACKING MODE (has_serial):
    - False: `stock` is the authoritative on-hand quantity.
    - True:  `stock` is a derived cache of count(units where status='available').
             Writers must never increment/decrement it; only the stock
             calculator recomputes it.

    PRICING:
    price_cents / min_price_cents / max_price_cents are defaults. A unit may
    override any of them (hybrid pricing).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_brand_model", "brand", "model"),
        db.Index("ix_products_has_serial", "has_serial"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    brand = db.Column(db.String(120), nullable=False)
    model = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    threshold = db.Column(db.Integer, nullable=False, default=0)
    has_serial = db.Column(db.Boolean, nullable=False, default=False)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=True)
    min_price_cents = db.Column(db.Integer, nullable=True)
    max_price_cents = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} brand={self.brand!r} model={self.model!r} has_serial={self.has_serial}>"

    def to_record(self) -> ProductRecord:
        return ProductRecord(
            id=self.id,
            brand=self.brand,
            model=self.model,
            category=self.category,
            stock=self.stock or 0,
            threshold=self.threshold or 0,
            has_serial=bool(self.has_serial),
            price_cents=self.price_cents,
            min_price_cents=self.min_price_cents,
            max_price_cents=self.max_price_cents,
        )

    def to_dict(self) -> dict:
        data = self.to_record().to_dict()
        data.update({
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        })
        return data


class ProductUnit(db.Model):
    """
    One individually tracked, serialized item (IMEI / serial number).

    WEAK REFERENCE: product_id deliberately has no foreign key. A unit whose
    product was deleted stays in the table and is reported as an orphan by the
    integrity checker instead of being cascaded away or blocking the delete.

    UNIQUENESS: serial_number is unique within a product. The same serial under
    two different products is allowed but flagged during acquisitions.

    IMMUTABLE AFTER ASSIGNMENT: barcode.
    STATUS: changed only through the unit lifecycle service.
    """
    __tablename__ = "product_units"
    __table_args__ = (
        db.UniqueConstraint("product_id", "serial_number", name="uq_product_units_product_serial"),
        db.Index("ix_product_units_serial", "serial_number"),
        db.Index("ix_product_units_product_status", "product_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, nullable=False, index=True)

    serial_number = db.Column(db.String(128), nullable=False)
    barcode = db.Column(db.String(64), nullable=True, unique=True)

    status = db.Column(db.String(16), nullable=False, default=UNIT_STATUS_AVAILABLE, index=True)

    price_cents = db.Column(db.Integer, nullable=True)
    min_price_cents = db.Column(db.Integer, nullable=True)
    max_price_cents = db.Column(db.Integer, nullable=True)

    color = db.Column(db.String(64), nullable=True)
    storage = db.Column(db.Integer, nullable=True)
    ram = db.Column(db.Integer, nullable=True)
    battery_level = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<ProductUnit id={self.id} product_id={self.product_id} serial={self.serial_number!r} status={self.status}>"

    def to_record(self) -> UnitRecord:
        return UnitRecord(
            id=self.id,
            product_id=self.product_id,
            serial_number=self.serial_number,
            status=self.status,
            barcode=self.barcode,
            price_cents=self.price_cents,
            min_price_cents=self.min_price_cents,
            max_price_cents=self.max_price_cents,
            color=self.color,
            storage=self.storage,
            ram=self.ram,
            battery_level=self.battery_level,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def to_dict(self) -> dict:
        return self.to_record().to_dict()


class UnitAuditEvent(db.Model):
    """
    Append-only trail of unit lifecycle events.

    Written in the same DB transaction as the change it records. Rows are never
    updated or deleted, and they survive deletion of the unit itself.
    """
    __tablename__ = "unit_audit_events"
    __table_args__ = (
        db.Index("ix_unit_events_unit_occurred", "unit_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    unit_id = db.Column(db.Integer, nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=True, index=True)

    # status.changed, status.auto_reverted, unit.transferred, unit.deleted,
    # barcode.assigned, barcode.failed
    event_type = db.Column(db.String(64), nullable=False, index=True)
    from_status = db.Column(db.String(16), nullable=True)
    to_status = db.Column(db.String(16), nullable=True)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "unit_id": self.unit_id,
            "product_id": self.product_id,
            "event_type": self.event_type,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "note": self.note,
            "payload": self.payload,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class BarcodeSequence(db.Model):
    """
    Atomic counters for barcode allocation, one row per entity kind.

    Two concurrent acquisitions are never handed the same number.
    """
    __tablename__ = "barcode_sequences"
    __table_args__ = (
        db.UniqueConstraint("kind", name="uq_barcode_sequences_kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())


class BarcodeRegistration(db.Model):
    """
    Registry of issued barcodes, keyed to the entity they were issued for.

    The barcode string itself is short and CODE128-safe; the serial and device-spec
    metadata the barcode stands for is kept here so any scanner can resolve it.
    """
    __tablename__ = "barcode_registrations"
    __table_args__ = (
        db.UniqueConstraint("barcode", name="uq_barcode_registrations_barcode"),
        db.Index("ix_barcode_registrations_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    barcode = db.Column(db.String(64), nullable=False)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    payload = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "barcode": self.barcode,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "payload": self.payload,
            "created_at": to_utc_z(self.created_at),
        }
