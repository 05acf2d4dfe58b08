# Overview: Integrity checks; cross-references products, units and sales and reports drift as data.

"""
Integrity Checker

Four independent passes:
1. stock mismatches        serialized product stock != count(available units)
2. inconsistent statuses   sold without a completed sale / available with one
3. orphaned units          unit whose product row is gone
4. invalid serial sales    sale item serial on a non-serialized product, or
                           with no matching unit

Drift is returned in the report, never raised. A pass that cannot read its
data records one entry in report.pass_errors and the remaining passes still run.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

from ..domain import SALE_STATUS_COMPLETED, UNIT_STATUS_AVAILABLE, UNIT_STATUS_SOLD, UnitStatus
from ..errors import PersistenceError
from ..time_utils import to_utc_z, utcnow
from .unit_store import UnitStore


logger = logging.getLogger(__name__)

ISSUE_SOLD_WITHOUT_SALE = "sold but no active sale found"
ISSUE_AVAILABLE_WITH_SALE = "available but has a completed sale"
REASON_PRODUCT_MISSING = "product no longer exists"
ISSUE_NON_SERIALIZED_PRODUCT = "serial assigned to non-serialized product"
ISSUE_SERIAL_NOT_A_UNIT = "serial does not exist as a unit"


@dataclass(frozen=True)
class StockMismatch:
    product_id: int
    product_name: str
    stored_stock: int
    calculated_stock: int

    @property
    def difference(self) -> int:
        return self.stored_stock - self.calculated_stock

    def to_dict(self) -> dict:
        return {**asdict(self), "difference": self.difference}


@dataclass(frozen=True)
class InconsistentStatus:
    unit_id: int
    product_id: int
    serial_number: str
    status: UnitStatus
    issue: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class OrphanedUnit:
    unit_id: int
    product_id: int
    serial_number: str
    reason: str = REASON_PRODUCT_MISSING

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class InvalidSerialSale:
    sale_item_id: int
    sale_id: int
    sale_number: str
    product_id: int
    serial_number: str
    issue: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class IntegrityReport:
    stock_mismatches: list[StockMismatch] = field(default_factory=list)
    orphaned_units: list[OrphanedUnit] = field(default_factory=list)
    invalid_serial_sales: list[InvalidSerialSale] = field(default_factory=list)
    inconsistent_statuses: list[InconsistentStatus] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    pass_errors: list[str] = field(default_factory=list)
    generated_at: object = None

    @property
    def issue_count(self) -> int:
        return (
            len(self.stock_mismatches)
            + len(self.orphaned_units)
            + len(self.invalid_serial_sales)
            + len(self.inconsistent_statuses)
        )

    @property
    def is_clean(self) -> bool:
        return self.issue_count == 0 and not self.pass_errors

    def to_dict(self) -> dict:
        return {
            "generated_at": to_utc_z(self.generated_at),
            "is_clean": self.is_clean,
            "stock_mismatches": [m.to_dict() for m in self.stock_mismatches],
            "orphaned_units": [o.to_dict() for o in self.orphaned_units],
            "invalid_serial_sales": [s.to_dict() for s in self.invalid_serial_sales],
            "inconsistent_statuses": [s.to_dict() for s in self.inconsistent_statuses],
            "suggestions": list(self.suggestions),
            "pass_errors": list(self.pass_errors),
        }


def build_suggestions(report: IntegrityReport) -> list[str]:
    suggestions = []
    if report.stock_mismatches:
        suggestions.append(
            f"Found {len(report.stock_mismatches)} product(s) with stock mismatches. "
            "Run auto-repair to recompute stock from available units."
        )
    if report.orphaned_units:
        suggestions.append(
            f"Found {len(report.orphaned_units)} orphaned unit(s). "
            "Reassign them to an existing product or delete them."
        )
    if report.invalid_serial_sales:
        suggestions.append(
            f"Found {len(report.invalid_serial_sales)} sale item(s) with invalid serial references. "
            "Review the sales records manually."
        )
    if report.inconsistent_statuses:
        suggestions.append(
            f"Found {len(report.inconsistent_statuses)} unit(s) with inconsistent statuses. "
            "Run auto-repair for sold units without a sale; review the rest manually."
        )
    if not any((
        report.stock_mismatches,
        report.orphaned_units,
        report.invalid_serial_sales,
        report.inconsistent_statuses,
    )):
        suggestions.append("No integrity issues found. Inventory is consistent.")
    return suggestions


class IntegrityChecker:
    def __init__(self, store: UnitStore):
        self.store = store

    def run_check(self) -> IntegrityReport:
        report = IntegrityReport(generated_at=utcnow())

        passes = (
            ("stock mismatch", self.find_stock_mismatches, report.stock_mismatches),
            ("status consistency", self.find_inconsistent_statuses, report.inconsistent_statuses),
            ("orphaned unit", self.find_orphaned_units, report.orphaned_units),
            ("invalid serial sale", self.find_invalid_serial_sales, report.invalid_serial_sales),
        )
        for name, run_pass, target in passes:
            try:
                target.extend(run_pass())
            except PersistenceError as exc:
                logger.error("Integrity %s pass failed: %s", name, exc)
                report.pass_errors.append(f"{name} pass failed: {exc}")

        report.suggestions = build_suggestions(report)
        logger.info(
            "Integrity check finished: %d issue(s), %d failed pass(es)",
            report.issue_count, len(report.pass_errors),
        )
        return report

    def find_stock_mismatches(self) -> list[StockMismatch]:
        return [
            StockMismatch(
                product_id=product.id,
                product_name=product.display_name,
                stored_stock=product.stock or 0,
                calculated_stock=available,
            )
            for product, available in self.store.available_unit_counts()
            if (product.stock or 0) != available
        ]

    def _completed_sale_keys(self) -> set[tuple[int, str]]:
        return {
            (item.product_id, item.serial_number)
            for item in self.store.list_serial_sale_items()
            if item.sale_status == SALE_STATUS_COMPLETED
        }

    def find_inconsistent_statuses(self) -> list[InconsistentStatus]:
        completed = self._completed_sale_keys()
        issues: list[InconsistentStatus] = []

        for unit in self.store.list_units_by_status(UNIT_STATUS_SOLD):
            if (unit.product_id, unit.serial_number) not in completed:
                issues.append(InconsistentStatus(
                    unit_id=unit.id,
                    product_id=unit.product_id,
                    serial_number=unit.serial_number,
                    status=unit.status,
                    issue=ISSUE_SOLD_WITHOUT_SALE,
                ))

        for unit in self.store.list_units_by_status(UNIT_STATUS_AVAILABLE):
            if (unit.product_id, unit.serial_number) in completed:
                issues.append(InconsistentStatus(
                    unit_id=unit.id,
                    product_id=unit.product_id,
                    serial_number=unit.serial_number,
                    status=unit.status,
                    issue=ISSUE_AVAILABLE_WITH_SALE,
                ))

        return issues

    def find_orphaned_units(self) -> list[OrphanedUnit]:
        return [
            OrphanedUnit(unit_id=unit.id, product_id=unit.product_id, serial_number=unit.serial_number)
            for unit in self.store.list_orphaned_units()
        ]

    def find_invalid_serial_sales(self) -> list[InvalidSerialSale]:
        invalid: list[InvalidSerialSale] = []
        for item in self.store.list_serial_sale_items():
            if item.product_has_serial is False:
                issue = ISSUE_NON_SERIALIZED_PRODUCT
            elif item.unit_id is None:
                issue = ISSUE_SERIAL_NOT_A_UNIT
            else:
                continue
            invalid.append(InvalidSerialSale(
                sale_item_id=item.sale_item_id,
                sale_id=item.sale_id,
                sale_number=item.sale_number,
                product_id=item.product_id,
                serial_number=item.serial_number,
                issue=issue,
            ))
        return invalid
