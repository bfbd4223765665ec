"""Cart reads and mutations.

``read_cart`` is a display view: lines whose product vanished or was
deactivated are dropped silently. ``validate_cart`` reports every problem
instead. Neither is trusted by checkout, which re-reads the catalog itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

import structlog

from storefront.errors import InsufficientStockError, NotFoundError
from storefront.models import Cart, CartItem, Product, money, utc_now
from storefront.store.base import Store

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CartLine:
    product: Product
    quantity: int
    added_at: datetime

    @property
    def subtotal(self) -> Decimal:
        return money(self.product.price * self.quantity)


@dataclass(frozen=True)
class CartSnapshot:
    user_id: str
    items: tuple[CartLine, ...]

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.items)

    @property
    def total_amount(self) -> Decimal:
        return money(sum((line.subtotal for line in self.items), Decimal("0")))

    @property
    def is_empty(self) -> bool:
        return not self.items


@dataclass
class CartValidation:
    is_valid: bool = True
    issues: list[str] = field(default_factory=list)
    items: list[CartLine] = field(default_factory=list)

    @property
    def total_amount(self) -> Decimal:
        return money(sum((line.subtotal for line in self.items), Decimal("0")))


class CartService:
    def __init__(self, store: Store, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    def read_cart(self, user_id: str) -> Optional[CartSnapshot]:
        cart = self.store.get_cart(user_id)
        if cart is None or not cart.items:
            return None
        lines = []
        for item in cart.items:
            product = self.store.get_product(item.product_id)
            if product is None or not product.active:
                continue
            lines.append(CartLine(product=product, quantity=item.quantity, added_at=item.added_at))
        return CartSnapshot(user_id=user_id, items=tuple(lines))

    def validate_cart(self, user_id: str) -> CartValidation:
        result = CartValidation()
        cart = self.store.get_cart(user_id)
        if cart is None:
            return result
        for item in cart.items:
            product = self.store.get_product(item.product_id)
            if product is None:
                result.issues.append(f'Product "{item.product_id}" no longer exists')
                continue
            if not product.active:
                result.issues.append(f'Product "{product.name}" is no longer available')
                continue
            if product.stock < item.quantity:
                result.issues.append(
                    f'Insufficient stock for "{product.name}". '
                    f"Available: {product.stock}, Requested: {item.quantity}"
                )
                continue
            result.items.append(CartLine(product=product, quantity=item.quantity, added_at=item.added_at))
        result.is_valid = not result.issues
        return result

    def count(self, user_id: str) -> int:
        snapshot = self.read_cart(user_id)
        return snapshot.total_items if snapshot else 0

    def _active_product(self, product_id: str) -> Product:
        product = self.store.get_product(product_id)
        if product is None or not product.active:
            raise NotFoundError("Product", product_id)
        return product

    def add_item(self, user_id: str, product_id: str, quantity: int) -> Optional[CartSnapshot]:
        if quantity < 1:
            raise ValueError("quantity must be at least 1")
        with self.store.transaction():
            product = self._active_product(product_id)
            cart = self.store.get_cart(user_id) or Cart(user_id=user_id)
            existing = cart.find(product_id)
            wanted = quantity + (existing.quantity if existing else 0)
            if product.stock < wanted:
                raise InsufficientStockError(product.id, product.name, product.stock, wanted)
            if existing:
                item = CartItem(product_id=product_id, quantity=wanted, added_at=existing.added_at)
            else:
                item = CartItem(product_id=product_id, quantity=wanted, added_at=self.clock())
            self.store.save_cart(cart.with_item(item))
        log.info("cart.item_added", user_id=user_id, product_id=product_id, quantity=wanted)
        return self.read_cart(user_id)

    def update_item(self, user_id: str, product_id: str, quantity: int) -> Optional[CartSnapshot]:
        """Set a line's quantity; zero removes the line."""
        if quantity < 0:
            raise ValueError("quantity must not be negative")
        if quantity == 0:
            return self.remove_item(user_id, product_id)
        with self.store.transaction():
            product = self._active_product(product_id)
            cart = self.store.get_cart(user_id)
            existing = cart.find(product_id) if cart else None
            if existing is None:
                raise NotFoundError("Cart item", product_id)
            if product.stock < quantity:
                raise InsufficientStockError(product.id, product.name, product.stock, quantity)
            self.store.save_cart(cart.with_item(
                CartItem(product_id=product_id, quantity=quantity, added_at=existing.added_at)
            ))
        return self.read_cart(user_id)

    def remove_item(self, user_id: str, product_id: str) -> Optional[CartSnapshot]:
        with self.store.transaction():
            cart = self.store.get_cart(user_id)
            if cart is None or cart.find(product_id) is None:
                raise NotFoundError("Cart item", product_id)
            self.store.save_cart(cart.without(product_id))
        return self.read_cart(user_id)

    def clear(self, user_id: str) -> bool:
        with self.store.transaction():
            return self.store.delete_cart(user_id)
