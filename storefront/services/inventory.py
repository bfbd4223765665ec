"""Inventory ledger: the authoritative per-product stock counter."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

import structlog

from storefront.errors import ConcurrencyConflict, NotFoundError
from storefront.models import Product, utc_now
from storefront.store.base import Store

log = structlog.get_logger(__name__)


class InventoryLedger:
    def __init__(self, store: Store, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    def _product(self, product_id: str) -> Product:
        product = self.store.get_product(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    def _swap(self, product: Product, stock: int) -> int:
        if not self.store.update_stock(product.id, product.stock, stock, self.clock()):
            raise ConcurrencyConflict("product", product.id)
        return stock

    def available(self, product_id: str) -> int:
        return self._product(product_id).stock

    def decrement(self, product_id: str, quantity: int) -> int:
        """Take ``quantity`` units out of stock, flooring at zero."""
        product = self._product(product_id)
        stock = self._swap(product, max(0, product.stock - quantity))
        log.debug("inventory.decremented", product_id=product_id, quantity=quantity, stock=stock)
        return stock

    def restore(self, product_id: str, quantity: int) -> int:
        """Put back units taken by ``decrement``."""
        product = self._product(product_id)
        stock = self._swap(product, product.stock + quantity)
        log.debug("inventory.restored", product_id=product_id, quantity=quantity, stock=stock)
        return stock

    def restock(self, product_id: str, quantity: int) -> int:
        if quantity <= 0:
            raise ValueError("restock quantity must be positive")
        with self.store.transaction():
            stock = self.restore(product_id, quantity)
        log.info("inventory.restocked", product_id=product_id, quantity=quantity, stock=stock)
        return stock
