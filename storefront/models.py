"""Domain records for the storefront.

Records are frozen; a change produces a new value through ``replace`` and the
store persists it. Money is ``Decimal`` quantized to cents.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
import uuid

CENT = Decimal("0.01")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def money(value) -> Decimal:
    """Round to 2 decimal places, half up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


# Forward transitions; CANCELLED and DELIVERED are terminal.
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: Decimal
    stock: int
    active: bool = True
    description: str = ""
    category: str = ""
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class CartItem:
    product_id: str
    quantity: int
    added_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class Cart:
    """A user's pre-checkout selection, in insertion order."""

    user_id: str
    items: tuple[CartItem, ...] = ()

    def find(self, product_id: str) -> CartItem | None:
        return next((i for i in self.items if i.product_id == product_id), None)

    def with_item(self, item: CartItem) -> "Cart":
        """Replace the line for ``item.product_id`` in place, or append it."""
        if self.find(item.product_id) is None:
            return replace(self, items=self.items + (item,))
        return replace(
            self,
            items=tuple(item if i.product_id == item.product_id else i for i in self.items),
        )

    def without(self, product_id: str) -> "Cart":
        return replace(self, items=tuple(i for i in self.items if i.product_id != product_id))


@dataclass(frozen=True)
class Coupon:
    """A single-use discount token.

    ``used_by`` and ``used_at`` are set together with ``is_used`` and cleared
    together with it; go through ``mark_used``/``mark_unused``.
    """

    id: str
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    is_used: bool = False
    used_by: str | None = None
    used_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)

    def mark_used(self, user_id: str, at: datetime) -> "Coupon":
        return replace(self, is_used=True, used_by=user_id, used_at=at)

    def mark_unused(self) -> "Coupon":
        return replace(self, is_used=False, used_by=None, used_at=None)

    def is_expired(self, now: datetime) -> bool:
        """True once ``expires_at`` is strictly in the past."""
        return self.expires_at is not None and self.expires_at < now


@dataclass(frozen=True)
class OrderItem:
    product_id: str
    product_name: str
    unit_price: Decimal
    quantity: int
    subtotal: Decimal


@dataclass(frozen=True)
class Order:
    id: str
    user_id: str
    items: tuple[OrderItem, ...]
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal
    status: OrderStatus = OrderStatus.PENDING
    discount_code: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def item_count(self) -> int:
        return sum(i.quantity for i in self.items)
