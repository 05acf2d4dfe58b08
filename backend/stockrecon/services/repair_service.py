# Overview: Auto-repair; fixes the drift that has exactly one correct value.

"""
Auto-Repair

Repairs:
- stock mismatch  -> overwrite stored stock with the recomputed available count
- sold unit with no completed sale -> back to available (through the lifecycle
  service's repair path, which re-checks the sales before writing)

"available but has a completed sale" is reported only. Forcing such a unit to
sold would hide whichever record is actually wrong.

Per-item failures are collected in RepairResult.errors; the batch continues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..errors import InvalidTransitionError, NotFoundError, PersistenceError
from .integrity_service import (
    ISSUE_SOLD_WITHOUT_SALE,
    InconsistentStatus,
    IntegrityChecker,
    StockMismatch,
)
from .stock_service import StockCalculator
from .unit_lifecycle_service import UnitLifecycleService


logger = logging.getLogger(__name__)


@dataclass
class RepairResult:
    repaired: int = 0
    errors: list[str] = field(default_factory=list)

    def merge(self, other: "RepairResult") -> "RepairResult":
        return RepairResult(self.repaired + other.repaired, self.errors + other.errors)

    def to_dict(self) -> dict:
        return {"repaired": self.repaired, "errors": list(self.errors)}


class AutoRepairService:
    def __init__(
        self,
        checker: IntegrityChecker,
        lifecycle: UnitLifecycleService,
        calculator: StockCalculator,
    ):
        self.checker = checker
        self.lifecycle = lifecycle
        self.calculator = calculator

    def repair_stock_mismatches(self, mismatches: Optional[list[StockMismatch]] = None) -> RepairResult:
        if mismatches is None:
            mismatches = self.checker.find_stock_mismatches()

        result = RepairResult()
        for mismatch in mismatches:
            try:
                self.calculator.recompute_stock(mismatch.product_id)
                result.repaired += 1
            except (PersistenceError, NotFoundError) as exc:
                result.errors.append(f"Product {mismatch.product_id} ({mismatch.product_name}): {exc}")

        logger.info("Stock repair: %d repaired, %d error(s)", result.repaired, len(result.errors))
        return result

    def repair_status_inconsistencies(
        self, inconsistencies: Optional[list[InconsistentStatus]] = None
    ) -> RepairResult:
        if inconsistencies is None:
            inconsistencies = self.checker.find_inconsistent_statuses()

        result = RepairResult()
        for item in inconsistencies:
            if item.issue != ISSUE_SOLD_WITHOUT_SALE:
                continue
            try:
                self.lifecycle.release_unsold_unit(item.unit_id, note="auto-repair: " + item.issue)
                result.repaired += 1
            except (PersistenceError, NotFoundError, InvalidTransitionError) as exc:
                result.errors.append(f"Unit {item.unit_id} ({item.serial_number}): {exc}")

        logger.info("Status repair: %d repaired, %d error(s)", result.repaired, len(result.errors))
        return result

    def auto_repair(self) -> RepairResult:
        """
        Status repair, then a fresh stock pass.

        Releasing sold units changes available counts, so stock mismatches are
        re-read after the status repair rather than taken from an earlier report.
        A second run with no intervening writes repairs nothing.
        """
        status_result = self.repair_status_inconsistencies()
        stock_result = self.repair_stock_mismatches()
        return status_result.merge(stock_result)
