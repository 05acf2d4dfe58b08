# Overview: Stock acquisitions; creates products and their initial units as one compensated transaction.

"""
Acquisition Workflow

Per item, in order:
  create_product  (new products only)   rollback: delete the product
  create_units    (serialized)          rollback: delete the created units
  add_stock       (non-serialized)      rollback: restore the previous stock

Unit entries are checked against the unit field rules before anything is
written; a missing serial or an out-of-range field rejects the whole request,
as does a serial repeated inside one item unless allow_partial is set.

With allow_partial=False (default) an entry the store refuses (a serial
already on the product) fails the create_units step: the units it did create
are removed before it raises, and the orchestrator unwinds the earlier steps.
With allow_partial=True those entry errors are reported and the acquisition
still succeeds.

Serials that already exist under a different product are reported as
warnings; they are legal but usually mean the wrong product was picked.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..domain import Pricing, ProductRecord, UnitEntry
from ..errors import AcquisitionError, NotFoundError, PersistenceError, ValidationError
from .transaction_service import TransactionOrchestrator, TransactionResult, TransactionStep
from .unit_lifecycle_service import UnitLifecycleService, validate_unit_entries
from .unit_store import PRODUCT_WRITABLE_FIELDS, UnitStore


logger = logging.getLogger(__name__)


@dataclass
class AcquisitionItem:
    """Either product_id (existing product) or product_data (new product)."""
    product_id: Optional[int] = None
    product_data: Optional[dict] = None
    quantity: int = 0
    unit_entries: list[UnitEntry] = field(default_factory=list)
    default_pricing: Optional[Pricing] = None

    @property
    def creates_new_product(self) -> bool:
        return self.product_data is not None

    @classmethod
    def from_dict(cls, data: dict) -> "AcquisitionItem":
        pricing = data.get("default_pricing")
        return cls(
            product_id=data.get("product_id"),
            product_data=data.get("product"),
            quantity=int(data.get("quantity") or 0),
            unit_entries=[
                entry if isinstance(entry, UnitEntry) else UnitEntry.from_dict(entry)
                for entry in data.get("units") or []
            ],
            default_pricing=Pricing(**pricing) if pricing else None,
        )


@dataclass
class AcquisitionResult:
    success: bool
    product_ids: list[int] = field(default_factory=list)
    unit_ids: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    transaction: Optional[TransactionResult] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "product_ids": list(self.product_ids),
            "unit_ids": list(self.unit_ids),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "transaction": self.transaction.to_dict() if self.transaction else None,
        }


def _validate_item(index: int, item: AcquisitionItem, allow_partial: bool = False) -> None:
    label = f"Item {index + 1}"
    entry_errors = validate_unit_entries(item.unit_entries, allow_duplicates=allow_partial)
    if entry_errors:
        raise ValidationError(f"{label}: {'; '.join(entry_errors)}")
    if item.product_id is None and item.product_data is None:
        raise ValidationError(f"{label}: product_id or product data is required")
    if item.product_id is not None and item.product_data is not None:
        raise ValidationError(f"{label}: provide either product_id or product data, not both")
    if item.quantity < 0:
        raise ValidationError(f"{label}: quantity must be non-negative")
    if item.product_data is not None:
        unknown = set(item.product_data) - PRODUCT_WRITABLE_FIELDS
        if unknown:
            raise ValidationError(f"{label}: unknown product fields: {', '.join(sorted(unknown))}")
        if not (item.product_data.get("brand") or "").strip() or not (item.product_data.get("model") or "").strip():
            raise ValidationError(f"{label}: brand and model are required")


class AcquisitionService:
    def __init__(
        self,
        store: UnitStore,
        lifecycle: UnitLifecycleService,
        orchestrator: Optional[TransactionOrchestrator] = None,
    ):
        self.store = store
        self.lifecycle = lifecycle
        self.orchestrator = orchestrator or TransactionOrchestrator()

    def acquire(self, items: list[AcquisitionItem | dict], *, allow_partial: bool = False) -> AcquisitionResult:
        """
        Raises:
            ValidationError: malformed item (nothing is written).
        """
        items = [item if isinstance(item, AcquisitionItem) else AcquisitionItem.from_dict(item) for item in items]
        if not items:
            raise ValidationError("At least one acquisition item is required")
        for index, item in enumerate(items):
            _validate_item(index, item, allow_partial)

        result = AcquisitionResult(success=False)
        contexts: list[dict[str, Any]] = []
        steps: list[TransactionStep] = []
        for index, item in enumerate(items):
            ctx: dict[str, Any] = {"product_id": item.product_id, "unit_ids": [], "entry_errors": []}
            contexts.append(ctx)
            steps.extend(self._item_steps(index, item, ctx, result, allow_partial))

        tx = self.orchestrator.execute(steps, name="acquisition")
        result.transaction = tx
        result.success = tx.success

        if tx.success:
            for item, ctx in zip(items, contexts):
                if item.creates_new_product:
                    result.product_ids.append(ctx["product_id"])
                result.unit_ids.extend(ctx["unit_ids"])
                result.errors.extend(ctx["entry_errors"])
            logger.info(
                "Acquisition completed: %d new product(s), %d unit(s)",
                len(result.product_ids), len(result.unit_ids),
            )
        else:
            result.errors.extend(str(exc) for exc in tx.errors)
            result.errors.extend(tx.rollback_errors)
            logger.error("Acquisition failed at step %s: %s", tx.failed_step, result.errors)

        return result

    # -- steps --------------------------------------------------------------

    def _item_steps(
        self,
        index: int,
        item: AcquisitionItem,
        ctx: dict,
        result: AcquisitionResult,
        allow_partial: bool,
    ) -> list[TransactionStep]:
        steps = []

        if item.creates_new_product:
            def create_product() -> ProductRecord:
                data = dict(item.product_data)
                data["stock"] = 0
                product = self.store.insert_product(data)
                ctx["product_id"] = product.id
                return product

            def delete_product(product: ProductRecord) -> None:
                self.store.delete_product(product.id)

            steps.append(TransactionStep(f"create_product[{index}]", create_product, delete_product))

        def resolve_product() -> ProductRecord:
            product = self.store.get_product(ctx["product_id"])
            if product is None:
                raise NotFoundError(f"Product {ctx['product_id']} not found")
            if item.unit_entries and not product.has_serial:
                raise ValidationError(f"Product {product.id} does not track serial numbers")
            if product.has_serial and item.quantity and not item.unit_entries:
                raise ValidationError(f"Product {product.id} is serialized; provide unit entries instead of a quantity")
            ctx["product"] = product
            return product

        steps.append(TransactionStep(f"resolve_product[{index}]", resolve_product))

        def create_units() -> list[int]:
            product = ctx["product"]
            if not product.has_serial or not item.unit_entries:
                return []

            for unit in self.lifecycle.find_cross_product_serials(
                product.id, [entry.serial for entry in item.unit_entries]
            ):
                result.warnings.append(
                    f"Serial {unit.serial_number} already exists under product {unit.product_id}"
                )

            created = self.lifecycle.create_units(
                product.id,
                item.unit_entries,
                default_pricing=item.default_pricing or product.pricing,
            )
            unit_ids = [unit.id for unit in created.created]

            if created.errors and not allow_partial:
                message = f"Unit creation failed for product {product.id}: {'; '.join(created.errors)}"
                cleanup_errors, last_exc = self._remove_units(unit_ids)
                if cleanup_errors:
                    logger.error("Could not remove units after failed creation: %s", cleanup_errors)
                    raise AcquisitionError(f"{message}; {'; '.join(cleanup_errors)}") from last_exc
                raise AcquisitionError(message)

            ctx["unit_ids"] = unit_ids
            ctx["entry_errors"] = list(created.errors)
            return unit_ids

        steps.append(TransactionStep(f"create_units[{index}]", create_units, self._delete_units))

        def add_stock() -> Optional[int]:
            product = ctx["product"]
            if product.has_serial or item.quantity <= 0:
                return None
            previous = product.stock or 0
            self.store.update_product_stock(product.id, previous + item.quantity)
            return previous

        def restore_stock(previous: Optional[int]) -> None:
            if previous is not None:
                self.store.update_product_stock(ctx["product"].id, previous)

        steps.append(TransactionStep(f"add_stock[{index}]", add_stock, restore_stock))
        return steps

    def _remove_units(self, unit_ids: list[int]) -> tuple[list[str], Optional[Exception]]:
        """Delete every unit it can; returns the failures and the last error raised."""
        errors: list[str] = []
        last_exc: Optional[Exception] = None
        for unit_id in unit_ids:
            try:
                self.lifecycle.delete_unit(unit_id)
            except (PersistenceError, NotFoundError) as exc:
                errors.append(f"Cleanup of unit {unit_id} failed: {exc}")
                last_exc = exc
        return errors, last_exc

    def _delete_units(self, unit_ids: list[int]) -> None:
        errors, last_exc = self._remove_units(unit_ids)
        if errors:
            raise AcquisitionError("; ".join(errors)) from last_exc
