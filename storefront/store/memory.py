"""Map-backed store for tests and single-process development."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Iterator

import structlog

from storefront.errors import DuplicateCouponError
from storefront.models import Cart, Coupon, Order, OrderStatus, Product

log = structlog.get_logger(__name__)


class MemoryStore:
    """In-memory implementation of the ``Store`` protocol.

    Every access holds one re-entrant lock, so a transaction is a single
    writer for the whole store. The outermost transaction snapshots the maps
    and restores them if an exception escapes.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self.products: dict[str, Product] = {}
        self.carts: dict[str, Cart] = {}
        self.orders: dict[str, Order] = {}
        self.coupons: dict[str, Coupon] = {}
        # Secondary indexes
        self.orders_by_user: dict[str, list[str]] = {}
        self.coupons_by_code: dict[str, str] = {}

    def _snapshot(self) -> tuple:
        return (
            dict(self.products),
            dict(self.carts),
            dict(self.orders),
            dict(self.coupons),
            {k: list(v) for k, v in self.orders_by_user.items()},
            dict(self.coupons_by_code),
        )

    def _restore(self, snap: tuple) -> None:
        (
            self.products,
            self.carts,
            self.orders,
            self.coupons,
            self.orders_by_user,
            self.coupons_by_code,
        ) = snap

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            outermost = self._depth == 0
            snap = self._snapshot() if outermost else None
            self._depth += 1
            try:
                yield
            except BaseException:
                if outermost:
                    self._restore(snap)
                    log.debug("store.rolled_back")
                raise
            finally:
                self._depth -= 1

    # Products
    def get_product(self, product_id: str) -> Product | None:
        with self._lock:
            return self.products.get(product_id)

    def list_products(self, include_inactive: bool = False) -> list[Product]:
        with self._lock:
            return [p for p in self.products.values() if include_inactive or p.active]

    def save_product(self, product: Product) -> Product:
        with self._lock:
            self.products[product.id] = product
            return product

    def update_stock(self, product_id: str, expected: int, stock: int, at: datetime) -> bool:
        with self._lock:
            current = self.products.get(product_id)
            if current is None or current.stock != expected:
                return False
            self.products[product_id] = replace(current, stock=stock, updated_at=at)
            return True

    # Carts
    def get_cart(self, user_id: str) -> Cart | None:
        with self._lock:
            return self.carts.get(user_id)

    def save_cart(self, cart: Cart) -> Cart:
        with self._lock:
            self.carts[cart.user_id] = cart
            return cart

    def delete_cart(self, user_id: str) -> bool:
        with self._lock:
            return self.carts.pop(user_id, None) is not None

    # Orders
    def get_order(self, order_id: str) -> Order | None:
        with self._lock:
            return self.orders.get(order_id)

    def list_orders(self, user_id: str | None = None) -> list[Order]:
        with self._lock:
            if user_id is None:
                return list(self.orders.values())
            return [self.orders[oid] for oid in self.orders_by_user.get(user_id, [])]

    def save_order(self, order: Order) -> Order:
        with self._lock:
            if order.id not in self.orders:
                self.orders_by_user.setdefault(order.user_id, []).append(order.id)
            self.orders[order.id] = order
            return order

    def update_order_status(
        self, order_id: str, expected: OrderStatus, status: OrderStatus, at: datetime
    ) -> bool:
        with self._lock:
            current = self.orders.get(order_id)
            if current is None or current.status != expected:
                return False
            self.orders[order_id] = replace(current, status=status, updated_at=at)
            return True

    # Coupons
    def get_coupon(self, coupon_id: str) -> Coupon | None:
        with self._lock:
            return self.coupons.get(coupon_id)

    def get_coupon_by_code(self, code: str) -> Coupon | None:
        with self._lock:
            coupon_id = self.coupons_by_code.get(code)
            return self.coupons.get(coupon_id) if coupon_id else None

    def list_coupons(self) -> list[Coupon]:
        with self._lock:
            return list(self.coupons.values())

    def add_coupon(self, coupon: Coupon) -> Coupon:
        with self._lock:
            if coupon.code in self.coupons_by_code:
                raise DuplicateCouponError(coupon.code)
            self.coupons[coupon.id] = coupon
            self.coupons_by_code[coupon.code] = coupon.id
            return coupon

    def replace_coupon(self, expected: Coupon, coupon: Coupon) -> bool:
        with self._lock:
            current = self.coupons.get(expected.id)
            if current is None or current.is_used != expected.is_used:
                return False
            if current.code != coupon.code:
                self.coupons_by_code.pop(current.code, None)
                self.coupons_by_code[coupon.code] = coupon.id
            self.coupons[coupon.id] = coupon
            return True
