"""Persistence protocol the checkout core depends on."""

from __future__ import annotations

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Protocol

from storefront.models import Cart, Coupon, Order, OrderStatus, Product


class Store(Protocol):
    """Keyed lookup and upsert for products, carts, orders and coupons.

    Writes to the three shared counters (product stock, coupon use flag,
    order status) are compare-and-set: they return False when the stored
    value no longer matches ``expected`` and leave it untouched.

    ``transaction()`` makes a block all-or-nothing and serializes it against
    other transactions in the process. It is re-entrant.
    """

    def transaction(self) -> AbstractContextManager[None]: ...

    # Products
    def get_product(self, product_id: str) -> Product | None: ...

    def list_products(self, include_inactive: bool = False) -> list[Product]: ...

    def save_product(self, product: Product) -> Product: ...

    def update_stock(self, product_id: str, expected: int, stock: int, at: datetime) -> bool: ...

    # Carts
    def get_cart(self, user_id: str) -> Cart | None: ...

    def save_cart(self, cart: Cart) -> Cart: ...

    def delete_cart(self, user_id: str) -> bool: ...

    # Orders
    def get_order(self, order_id: str) -> Order | None: ...

    def list_orders(self, user_id: str | None = None) -> list[Order]: ...

    def save_order(self, order: Order) -> Order: ...

    def update_order_status(
        self, order_id: str, expected: OrderStatus, status: OrderStatus, at: datetime
    ) -> bool: ...

    # Coupons
    def get_coupon(self, coupon_id: str) -> Coupon | None: ...

    def get_coupon_by_code(self, code: str) -> Coupon | None: ...

    def list_coupons(self) -> list[Coupon]: ...

    def add_coupon(self, coupon: Coupon) -> Coupon:
        """Insert a new coupon; raises DuplicateCouponError if the code is taken."""
        ...

    def replace_coupon(self, expected: Coupon, coupon: Coupon) -> bool: ...
