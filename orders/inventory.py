"""
Purpose: The catalog collaborator as the order flow needs it.
What it does:
- get_product(id) -> price, quantity, seller
- reserve(id, n, key) / restore(id, n, key): atomic stock adjustments.

Each adjustment carries an idempotency key. The key is written in the same
compare-and-set as the quantity, so replaying a reservation or a release
(e.g. from a reconciliation sweep) never moves stock twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from common.errors import InsufficientQuantity, RecordNotFound
from storage.base import PRODUCTS, UNCHANGED, Store

logger = logging.getLogger(__name__)

# How many recent adjustment keys each product remembers.
MAX_REMEMBERED_ADJUSTMENTS = 1000


@dataclass
class Product:
    id: str
    name: str
    price: Decimal
    quantity: int
    seller_id: str
    unit: str = "kg"
    min_order_quantity: int = 1
    max_order_quantity: Optional[int] = None
    applied_adjustments: List[str] = field(default_factory=list)


class Inventory:
    def __init__(self, store: Store):
        self.store = store

    def add_product(self, product: Product) -> Product:
        return self.store.insert(PRODUCTS, product.id, product).record

    def get_product(self, product_id: str) -> Optional[Product]:
        current = self.store.get(PRODUCTS, product_id)
        return current.record if current else None

    def quantity(self, product_id: str) -> int:
        product = self.get_product(product_id)
        if product is None:
            raise RecordNotFound(f"Product {product_id} not found")
        return product.quantity

    def reserve(self, product_id: str, quantity: int, key: str) -> Product:
        return self._adjust(product_id, -quantity, key)

    def restore(self, product_id: str, quantity: int, key: str) -> Product:
        return self._adjust(product_id, quantity, key)

    def _adjust(self, product_id: str, delta: int, key: str) -> Product:
        def apply(product: Product):
            if key in product.applied_adjustments:
                return UNCHANGED
            if product.quantity + delta < 0:
                raise InsufficientQuantity(product_id, requested=-delta, available=product.quantity)
            product.quantity += delta
            product.applied_adjustments = (product.applied_adjustments + [key])[-MAX_REMEMBERED_ADJUSTMENTS:]
            return product

        updated = self.store.update(PRODUCTS, product_id, apply)
        logger.debug("Stock of %s adjusted by %+d (%s) -> %s", product_id, delta, key, updated.record.quantity)
        return updated.record
