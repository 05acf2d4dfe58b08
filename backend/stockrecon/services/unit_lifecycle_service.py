# Overview: Unit lifecycle; the single choke point for creating and mutating product units.

"""
Unit Lifecycle Service

================================================================================
PURPOSE: Sole authority for creating ProductUnit rows, changing their status,
moving them between products, deleting them, and assigning barcodes.
================================================================================

STATE MACHINE (ordinary callers):
    available -> reserved | sold | damaged
    reserved  -> available | sold
    damaged   -> available
    sold      -> (nothing)

REPAIR-ONLY:
    sold -> available   via release_unsold_unit(), and only after re-confirming
                        that no completed sale references the unit.

RULES:
1. Status is never written directly; every change goes through this service.
2. Barcodes are assigned once and never overwritten.
3. Batch creation is partial-success: each entry succeeds or records an error,
   and the batch carries on. Callers that need all-or-nothing wrap the call in
   a TransactionOrchestrator step with a rollback.
4. delete_unit() assumes the caller already verified the unit has no sale
   history. It is not re-checked here.

Every successful mutation refreshes the product's cached stock through the
stock calculator. That refresh is best-effort: if it fails the drift is left
for the integrity checker / auto-repair to pick up.
================================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..domain import (
    Pricing,
    UnitEntry,
    UnitEvent,
    UnitRecord,
    UNIT_STATUS_AVAILABLE,
    UNIT_STATUS_DAMAGED,
    UNIT_STATUS_RESERVED,
    UNIT_STATUS_SOLD,
    UnitStatus,
    VALID_UNIT_STATUSES,
    PRICE_FIELDS,
)
from ..errors import (
    BarcodeError,
    DuplicateSerialError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from ..validation import enforce_rules_unit
from .barcode_service import BarcodeGenerator
from .stock_service import StockCalculator
from .unit_store import UnitStore


logger = logging.getLogger(__name__)


ORDINARY_TRANSITIONS = {
    UNIT_STATUS_AVAILABLE: {UNIT_STATUS_RESERVED, UNIT_STATUS_SOLD, UNIT_STATUS_DAMAGED},
    UNIT_STATUS_RESERVED: {UNIT_STATUS_AVAILABLE, UNIT_STATUS_SOLD},
    UNIT_STATUS_DAMAGED: {UNIT_STATUS_AVAILABLE},
    UNIT_STATUS_SOLD: set(),
}

REPAIR_TRANSITIONS = {(UNIT_STATUS_SOLD, UNIT_STATUS_AVAILABLE)}


def validate_status(status: str) -> None:
    if status not in VALID_UNIT_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_UNIT_STATUSES))}"
        )


def can_transition(from_status: UnitStatus, to_status: UnitStatus, *, repair: bool = False) -> bool:
    """
    Check a status change against the state machine.

    Same-status is allowed (the caller treats it as a no-op). repair=True
    additionally admits the repair-only transitions.
    """
    validate_status(from_status)
    validate_status(to_status)

    if from_status == to_status:
        return True
    if to_status in ORDINARY_TRANSITIONS[from_status]:
        return True
    return repair and (from_status, to_status) in REPAIR_TRANSITIONS


def validate_unit_entries(entries: Iterable[UnitEntry], *, allow_duplicates: bool = False) -> list[str]:
    """
    Pre-creation checks for a batch of entries.

    Field rules are the ones the HTTP layer applies (validation.enforce_rules_unit).
    Returns human-readable problems; an empty list means the batch is clean.
    """
    errors: list[str] = []
    seen: set[str] = set()

    for index, entry in enumerate(entries):
        serial = (entry.serial or "").strip()
        if not serial:
            errors.append(f"Entry {index + 1}: serial number is required")
            continue

        if serial in seen and not allow_duplicates:
            errors.append(f"Duplicate serial number: {serial}")
        seen.add(serial)

        try:
            enforce_rules_unit({**{name: getattr(entry, name) for name in PRICE_FIELDS}, **entry.specs})
        except ValidationError as exc:
            errors.append(f"{serial}: {exc}")

    return errors


@dataclass
class CreateUnitsResult:
    created: list[UnitRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    barcodes: dict[str, str] = field(default_factory=dict)  # serial -> barcode

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "created": [unit.to_dict() for unit in self.created],
            "errors": list(self.errors),
            "barcodes": dict(self.barcodes),
        }


class UnitLifecycleService:
    def __init__(
        self,
        store: UnitStore,
        barcode_generator: BarcodeGenerator,
        stock_calculator: Optional[StockCalculator] = None,
        *,
        audit_reversals: bool = True,
    ):
        self.store = store
        self.barcodes = barcode_generator
        self.stock = stock_calculator
        self.audit_reversals = audit_reversals

    # -- reads --------------------------------------------------------------

    def get_unit(self, unit_id: int) -> UnitRecord:
        unit = self.store.get_unit(unit_id)
        if unit is None:
            raise NotFoundError(f"Unit {unit_id} not found")
        return unit

    def get_units(self, product_id: int, status: UnitStatus | None = None) -> list[UnitRecord]:
        if status is not None:
            validate_status(status)
        return self.store.get_product_units(product_id, status)

    def get_available_units(self, product_id: int) -> list[UnitRecord]:
        return self.store.get_product_units(product_id, UNIT_STATUS_AVAILABLE)

    def find_cross_product_serials(self, product_id: int, serials: Iterable[str]) -> list[UnitRecord]:
        """Units under OTHER products that share one of these serials (identity/pricing risk)."""
        matches: list[UnitRecord] = []
        for serial in dict.fromkeys(s.strip() for s in serials if s and s.strip()):
            matches.extend(u for u in self.store.find_units_by_serial(serial) if u.product_id != product_id)
        return matches

    # -- creation -----------------------------------------------------------

    def create_units(
        self,
        product_id: int,
        entries: Iterable[UnitEntry | dict],
        default_pricing: Optional[Pricing] = None,
        metadata: Optional[dict] = None,
    ) -> CreateUnitsResult:
        """
        Create one available unit per entry and give each a barcode.

        Pricing per field: entry value if set, otherwise default_pricing.

        A failed insert (including a duplicate serial within the product) is
        recorded against that entry and the batch continues. If the insert
        succeeds but the barcode cannot be generated or saved, the unit is
        still returned in `created` (without a barcode) and the error is
        recorded; backfill_missing_barcodes() can finish it later.

        Raises:
            NotFoundError: product_id does not exist (nothing is inserted).
        """
        product = self.store.get_product(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")

        defaults = default_pricing or Pricing()
        result = CreateUnitsResult()

        for index, raw in enumerate(entries):
            entry = raw if isinstance(raw, UnitEntry) else UnitEntry.from_dict(raw)
            serial = (entry.serial or "").strip()
            if not serial:
                result.errors.append(f"Entry {index + 1}: serial number is required")
                continue

            pricing = defaults.resolve(entry.pricing)
            data = {
                "product_id": product_id,
                "serial_number": serial,
                "status": UNIT_STATUS_AVAILABLE,
                "price_cents": pricing.price_cents,
                "min_price_cents": pricing.min_price_cents,
                "max_price_cents": pricing.max_price_cents,
                **entry.specs,
            }

            try:
                unit = self.store.insert_product_unit(data)
            except DuplicateSerialError:
                result.errors.append(f"{serial}: duplicate serial number for product {product_id}")
                continue
            except PersistenceError as exc:
                result.errors.append(f"{serial}: {exc}")
                continue

            barcode_metadata = {"serial": serial, "product_id": product_id, **entry.specs, **(metadata or {})}
            try:
                barcode = self.barcodes.generate(unit.id, barcode_metadata)
                unit = self.store.update_product_unit(
                    unit.id,
                    {"barcode": barcode},
                    event=UnitEvent(
                        unit_id=unit.id,
                        product_id=product_id,
                        event_type="barcode.assigned",
                        note=barcode,
                    ),
                )
                result.barcodes[serial] = barcode
            except (BarcodeError, PersistenceError) as exc:
                result.errors.append(f"{serial}: unit created without barcode ({exc})")
                self._record_event(UnitEvent(
                    unit_id=unit.id,
                    product_id=product_id,
                    event_type="barcode.failed",
                    note=str(exc)[:255],
                ))

            result.created.append(unit)

        if result.created:
            self._refresh_stock(product_id)

        if result.errors:
            logger.warning("Unit creation for product %s finished with errors: %s", product_id, result.errors)
        logger.info(
            "Created %d unit(s) for product %s (%d error(s))",
            len(result.created), product_id, len(result.errors),
        )
        return result

    # -- status -------------------------------------------------------------

    def update_status(self, unit_id: int, new_status: UnitStatus, *, note: str | None = None) -> UnitRecord:
        """
        Ordinary status transition.

        Raises:
            ValidationError: unknown status.
            InvalidTransitionError: transition not permitted (e.g. out of 'sold').
            NotFoundError: unit does not exist.
        """
        validate_status(new_status)
        unit = self.get_unit(unit_id)

        if unit.status == new_status:
            return unit
        if not can_transition(unit.status, new_status):
            raise InvalidTransitionError(unit_id, unit.status, new_status)

        updated = self.store.update_product_unit(
            unit_id,
            {"status": new_status},
            event=UnitEvent(
                unit_id=unit_id,
                product_id=unit.product_id,
                event_type="status.changed",
                from_status=unit.status,
                to_status=new_status,
                note=note,
            ),
        )
        self._refresh_stock(unit.product_id)
        return updated

    def release_unsold_unit(self, unit_id: int, *, note: str | None = None) -> UnitRecord:
        """
        Repair path: sold -> available for a unit no completed sale references.

        The sale cross-check is repeated here, immediately before the write,
        so a sale completed after the integrity report was built still blocks
        the reversal.
        """
        unit = self.get_unit(unit_id)
        if unit.status != UNIT_STATUS_SOLD:
            raise InvalidTransitionError(unit_id, unit.status, UNIT_STATUS_AVAILABLE, "unit is not sold")

        completed = [
            sale for sale in self.store.query_sales_by_serial(unit.product_id, unit.serial_number)
            if sale.is_completed
        ]
        if completed:
            raise InvalidTransitionError(
                unit_id,
                unit.status,
                UNIT_STATUS_AVAILABLE,
                f"completed sale {completed[0].sale_number} references this unit",
            )

        event = None
        if self.audit_reversals:
            event = UnitEvent(
                unit_id=unit_id,
                product_id=unit.product_id,
                event_type="status.auto_reverted",
                from_status=UNIT_STATUS_SOLD,
                to_status=UNIT_STATUS_AVAILABLE,
                note=note or "no completed sale references this unit",
                payload={"serial_number": unit.serial_number},
            )

        updated = self.store.update_product_unit(unit_id, {"status": UNIT_STATUS_AVAILABLE}, event=event)
        logger.warning(
            "Reverted unit %s (serial %s) from sold to available: no completed sale found",
            unit_id, unit.serial_number,
        )
        self._refresh_stock(unit.product_id)
        return updated

    # -- transfer / delete --------------------------------------------------

    def transfer_to_product(self, unit_id: int, target_product_id: int) -> UnitRecord:
        """
        Move a unit under another serialized product. All-or-nothing.

        Raises:
            ValidationError: target not serialized, unit sold, same product,
                or target already holds this serial.
            NotFoundError: unit or target product does not exist.
        """
        unit = self.get_unit(unit_id)
        target = self.store.get_product(target_product_id)
        if target is None:
            raise NotFoundError(f"Product {target_product_id} not found")

        if not target.has_serial:
            raise ValidationError(f"Target product {target_product_id} does not track serial numbers")
        if unit.status == UNIT_STATUS_SOLD:
            raise ValidationError(f"Unit {unit_id} is sold and cannot be transferred")
        if unit.product_id == target_product_id:
            raise ValidationError(f"Unit {unit_id} already belongs to product {target_product_id}")
        if self.store.find_unit(target_product_id, unit.serial_number) is not None:
            raise ValidationError(
                f"Product {target_product_id} already has a unit with serial {unit.serial_number}"
            )

        try:
            updated = self.store.update_product_unit(
                unit_id,
                {"product_id": target_product_id},
                event=UnitEvent(
                    unit_id=unit_id,
                    product_id=target_product_id,
                    event_type="unit.transferred",
                    payload={"from_product_id": unit.product_id, "to_product_id": target_product_id},
                ),
            )
        except DuplicateSerialError as exc:
            raise ValidationError(
                f"Product {target_product_id} already has a unit with serial {unit.serial_number}"
            ) from exc

        self._refresh_stock(unit.product_id)
        self._refresh_stock(target_product_id)
        return updated

    def delete_unit(self, unit_id: int) -> None:
        """
        Hard delete.

        PRECONDITION (not enforced): the unit has never appeared on a sale.
        The calling workflow owns that check.
        """
        unit = self.get_unit(unit_id)
        self.store.delete_product_unit(
            unit_id,
            event=UnitEvent(
                unit_id=unit_id,
                product_id=unit.product_id,
                event_type="unit.deleted",
                from_status=unit.status,
                payload={"serial_number": unit.serial_number, "barcode": unit.barcode},
            ),
        )
        self._refresh_stock(unit.product_id)

    # -- barcodes -----------------------------------------------------------

    def assign_barcode(self, unit_id: int) -> UnitRecord:
        unit = self.get_unit(unit_id)
        if unit.barcode:
            raise ValidationError(f"Unit {unit_id} already has barcode {unit.barcode}")

        barcode = self.barcodes.generate(
            unit.id,
            {"serial": unit.serial_number, "product_id": unit.product_id, **unit.specs},
        )
        return self.store.update_product_unit(
            unit.id,
            {"barcode": barcode},
            event=UnitEvent(
                unit_id=unit.id,
                product_id=unit.product_id,
                event_type="barcode.assigned",
                note=barcode,
            ),
        )

    def backfill_missing_barcodes(self) -> dict:
        updated = 0
        errors: list[str] = []
        for unit in self.store.list_units_missing_barcode():
            try:
                self.assign_barcode(unit.id)
                updated += 1
            except (BarcodeError, PersistenceError, ValidationError, NotFoundError) as exc:
                errors.append(f"{unit.serial_number}: {exc}")

        logger.info("Barcode backfill completed: %d updated, %d error(s)", updated, len(errors))
        return {"updated": updated, "errors": errors}

    def validate_unit_barcodes(self, product_id: int | None = None) -> dict:
        results = {"valid": 0, "invalid": [], "missing": []}
        for unit in self.store.list_units(product_id):
            if not unit.barcode:
                results["missing"].append(unit.serial_number)
                continue
            validation = self.barcodes.validate(unit.barcode)
            if validation.is_valid:
                results["valid"] += 1
            else:
                results["invalid"].append(f"{unit.serial_number}: {', '.join(validation.errors)}")
        return results

    # -- internals ----------------------------------------------------------

    def _record_event(self, event: UnitEvent) -> None:
        try:
            self.store.append_unit_event(event)
        except PersistenceError as exc:
            logger.warning("Could not record %s event for unit %s: %s", event.event_type, event.unit_id, exc)

    def _refresh_stock(self, product_id: int) -> None:
        if self.stock is None:
            return
        try:
            self.stock.recompute_stock(product_id)
        except (PersistenceError, NotFoundError) as exc:
            logger.warning("Stock refresh for product %s deferred to integrity repair: %s", product_id, exc)
