"""Discount policy: which discount, if any, an order gets.

The policy is pure. It decides from the user's prior order count, the
subtotal and an already looked-up manual coupon; minting or marking coupons
is left to the caller.

Precedence:

1. Automatic loyalty discount on every ``interval``-th non-cancelled order,
   ``percent`` off the subtotal. A manual code in the same request is ignored.
2. A manual coupon, only when (1) does not fire and a code was supplied.
3. No discount.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from storefront.errors import CouponAlreadyUsedError, CouponExpiredError, CouponNotFoundError
from storefront.models import Coupon, DiscountType, money, utc_now
from storefront.services.coupons import loyalty_code

ZERO = Decimal("0.00")


class DiscountKind(str, Enum):
    NONE = "NONE"
    LOYALTY = "LOYALTY"
    MANUAL = "MANUAL"


@dataclass(frozen=True)
class DiscountDecision:
    kind: DiscountKind
    subtotal: Decimal
    amount: Decimal = ZERO
    code: Optional[str] = None
    order_number: int = 0
    percent: Optional[int] = None
    coupon: Optional[Coupon] = None

    @property
    def total(self) -> Decimal:
        return money(max(ZERO, self.subtotal - self.amount))

    @property
    def applies(self) -> bool:
        return self.kind is not DiscountKind.NONE


def coupon_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    if coupon.discount_type == DiscountType.PERCENTAGE:
        return money(subtotal * coupon.discount_value / 100)
    return money(min(coupon.discount_value, subtotal))


@dataclass(frozen=True)
class DiscountPolicy:
    interval: int = 3
    percent: int = 10

    def __post_init__(self):
        if self.interval < 1:
            raise ValueError("loyalty interval must be at least 1")

    def is_loyalty_order(self, order_number: int) -> bool:
        return order_number > 0 and order_number % self.interval == 0

    def next_loyalty_order(self, prior_count: int) -> int:
        """Order number of the next order that earns the loyalty discount."""
        n = prior_count + 1
        return -(-n // self.interval) * self.interval

    def needs_coupon_lookup(self, prior_count: int, manual_code: Optional[str]) -> bool:
        return bool(manual_code) and not self.is_loyalty_order(prior_count + 1)

    def decide(
        self,
        user_id: str,
        prior_count: int,
        subtotal: Decimal,
        manual_code: Optional[str] = None,
        coupon: Optional[Coupon] = None,
        now: Optional[datetime] = None,
    ) -> DiscountDecision:
        subtotal = money(subtotal)
        order_number = prior_count + 1

        if self.is_loyalty_order(order_number):
            return DiscountDecision(
                kind=DiscountKind.LOYALTY,
                subtotal=subtotal,
                amount=money(subtotal * self.percent / 100),
                code=loyalty_code(user_id, order_number),
                order_number=order_number,
                percent=self.percent,
            )

        if manual_code:
            if coupon is None or coupon.code != manual_code:
                raise CouponNotFoundError(manual_code)
            if coupon.is_used:
                raise CouponAlreadyUsedError(manual_code)
            if coupon.is_expired(now or utc_now()):
                raise CouponExpiredError(manual_code)
            return DiscountDecision(
                kind=DiscountKind.MANUAL,
                subtotal=subtotal,
                amount=coupon_discount(coupon, subtotal),
                code=coupon.code,
                order_number=order_number,
                coupon=coupon,
            )

        return DiscountDecision(kind=DiscountKind.NONE, subtotal=subtotal, order_number=order_number)
