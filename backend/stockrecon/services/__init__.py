# Overview: Service graph wiring; builds the reconciliation services around one store accessor.

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from flask import current_app

from .acquisition_service import AcquisitionService
from .barcode_service import BarcodeGenerator
from .integrity_service import IntegrityChecker
from .repair_service import AutoRepairService
from .stock_service import StockCalculator
from .transaction_service import TransactionOrchestrator
from .unit_lifecycle_service import UnitLifecycleService
from .unit_store import SqlUnitStore, UnitStore


@dataclass
class InventoryServices:
    store: UnitStore
    barcodes: BarcodeGenerator
    stock: StockCalculator
    lifecycle: UnitLifecycleService
    integrity: IntegrityChecker
    repair: AutoRepairService
    orchestrator: TransactionOrchestrator
    acquisitions: AcquisitionService


def build_services(store: Optional[UnitStore] = None, config: Optional[Mapping] = None) -> InventoryServices:
    """
    Construct the service graph.

    `config` is any mapping with the Config keys (a Flask app.config works);
    missing keys fall back to the Config defaults.
    """
    config = config or {}
    if store is None:
        store = SqlUnitStore(
            retry_attempts=int(config.get("STORE_RETRY_ATTEMPTS", 3)),
            retry_backoff=float(config.get("STORE_RETRY_BACKOFF", 0.1)),
        )

    barcodes = BarcodeGenerator(
        store,
        prefix=config.get("BARCODE_PREFIX", "GPMS"),
        counter_width=int(config.get("BARCODE_COUNTER_WIDTH", 6)),
    )
    stock = StockCalculator(store)
    lifecycle = UnitLifecycleService(
        store,
        barcodes,
        stock,
        audit_reversals=bool(config.get("AUDIT_STATUS_REVERSALS", True)),
    )
    integrity = IntegrityChecker(store)
    orchestrator = TransactionOrchestrator()

    return InventoryServices(
        store=store,
        barcodes=barcodes,
        stock=stock,
        lifecycle=lifecycle,
        integrity=integrity,
        repair=AutoRepairService(integrity, lifecycle, stock),
        orchestrator=orchestrator,
        acquisitions=AcquisitionService(store, lifecycle, orchestrator),
    )


def current_services() -> InventoryServices:
    """Service graph of the active Flask app."""
    return current_app.extensions["stockrecon"]
