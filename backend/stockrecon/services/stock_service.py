# Overview: Effective stock calculation; the single answer to "how many can be sold right now".

"""
Effective Stock Invariants (authoritative)

- Non-serialized product (has_serial=False): effective stock = Product.stock as stored.
- Serialized product (has_serial=True):       effective stock = count(units where status='available').
  Product.stock is only a cache for these products.

Writes:
- recompute_stock() is the ONLY writer of Product.stock for serialized products,
  and it writes by recomputation, never by increment/decrement. Two writers racing
  on the same product converge on the next recompute.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..domain import ProductRecord, UnitRecord, UNIT_STATUS_AVAILABLE
from ..errors import NotFoundError
from .unit_store import UnitStore


logger = logging.getLogger(__name__)


def compute_effective_stock(product: ProductRecord, units: Optional[Iterable[UnitRecord]] = None) -> int:
    """
    Pure calculation for an already-loaded product (and its units).

    Serialized products with no unit list available count as zero.
    """
    if product.has_serial:
        if not units:
            return 0
        return sum(1 for unit in units if unit.status == UNIT_STATUS_AVAILABLE)
    return product.stock or 0


class StockCalculator:
    def __init__(self, store: UnitStore):
        self.store = store

    def effective_stock(self, product: ProductRecord, units: Optional[Iterable[UnitRecord]] = None) -> int:
        return compute_effective_stock(product, units)

    def _require_product(self, product_id: int) -> ProductRecord:
        product = self.store.get_product(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    def fetch_effective_stock(self, product_id: int) -> int:
        """Store-backed variant; uses an aggregate count instead of loading unit rows."""
        product = self._require_product(product_id)
        if product.has_serial:
            return self.store.count_available_units(product_id)
        return product.stock or 0

    def fetch_effective_stock_batch(self, product_ids: Iterable[int]) -> dict[int, int]:
        """
        One fetch_effective_stock call per id (O(n) round trips).

        Fine for UI-sized batches. A high-throughput caller should swap in a
        single grouped count query while keeping the {id: qty} result shape.
        """
        return {product_id: self.fetch_effective_stock(product_id) for product_id in dict.fromkeys(product_ids)}

    def recompute_stock(self, product_id: int) -> int:
        """
        Refresh the cached stock of a serialized product from its units.

        Returns the effective stock. Non-serialized products are left untouched.
        """
        product = self._require_product(product_id)
        if not product.has_serial:
            return product.stock or 0

        available = self.store.count_available_units(product_id)
        if product.stock != available:
            self.store.update_product_stock(product_id, available)
            logger.info(
                "Recomputed stock for product %s: %s -> %s",
                product_id, product.stock, available,
            )
        return available

    def is_low_stock(self, product: ProductRecord, units: Optional[Iterable[UnitRecord]] = None) -> bool:
        """At or below the product's low-stock threshold."""
        if units is None and product.has_serial:
            quantity = self.store.count_available_units(product.id)
        else:
            quantity = compute_effective_stock(product, units)
        return quantity <= (product.threshold or 0)
