"""Checkout: turn a user's cart into a PENDING order.

Everything is read and validated before the first write, and the writes run
inside one store transaction, so a failed checkout leaves the cart, stock,
coupons and order history exactly as they were. A lost compare-and-set race
restarts the whole checkout from a fresh read.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

import structlog

from storefront.errors import EmptyCartError, InsufficientStockError, ProductUnavailableError
from storefront.models import Order, OrderItem, OrderStatus, money, new_id, utc_now
from storefront.services.coupons import CouponRegistry
from storefront.services.discount import DiscountDecision, DiscountKind, DiscountPolicy
from storefront.services.events import Publisher, emit
from storefront.services.inventory import InventoryLedger
from storefront.services.retry import retry_on_conflict
from storefront.store.base import Store

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AppliedDiscount:
    code: str
    amount: Decimal


@dataclass(frozen=True)
class LoyaltyReward:
    order_number: int
    percentage: int

    @property
    def message(self) -> str:
        return (
            f"Congratulations! You received {self.percentage}% off "
            f"your {self.order_number}th order!"
        )


@dataclass(frozen=True)
class CheckoutResult:
    order: Order
    applied_discount: Optional[AppliedDiscount]
    loyalty_reward: Optional[LoyaltyReward]
    message: str


def count_prior_orders(store: Store, user_id: str) -> int:
    """Orders that count toward the loyalty interval: everything not cancelled."""
    return sum(1 for o in store.list_orders(user_id) if o.status != OrderStatus.CANCELLED)


class CheckoutService:
    def __init__(
        self,
        store: Store,
        policy: DiscountPolicy,
        coupons: CouponRegistry,
        ledger: InventoryLedger,
        clock: Callable[[], datetime] = utc_now,
        max_retries: int = 3,
        publish: Optional[Publisher] = None,
    ):
        self.store = store
        self.policy = policy
        self.coupons = coupons
        self.ledger = ledger
        self.clock = clock
        self.max_retries = max_retries
        self.publish = publish

    def checkout(self, user_id: str, coupon_code: Optional[str] = None) -> CheckoutResult:
        coupon_code = coupon_code or None
        result = retry_on_conflict(
            "checkout", self.max_retries, lambda: self._attempt(user_id, coupon_code)
        )
        log.info(
            "checkout.completed",
            order_id=result.order.id,
            user_id=user_id,
            total=str(result.order.total),
            discount_code=result.order.discount_code,
        )
        emit(self.publish, "order.created", result.order)
        return result

    def _read_items(self, user_id: str) -> tuple[list[OrderItem], Decimal]:
        cart = self.store.get_cart(user_id)
        if cart is None or not cart.items:
            raise EmptyCartError(user_id)
        items = []
        for line in cart.items:
            product = self.store.get_product(line.product_id)
            if product is None or not product.active:
                raise ProductUnavailableError(line.product_id)
            if product.stock < line.quantity:
                raise InsufficientStockError(product.id, product.name, product.stock, line.quantity)
            items.append(OrderItem(
                product_id=product.id,
                product_name=product.name,
                unit_price=product.price,
                quantity=line.quantity,
                subtotal=money(product.price * line.quantity),
            ))
        subtotal = money(sum((i.subtotal for i in items), Decimal("0")))
        return items, subtotal

    def _attempt(self, user_id: str, coupon_code: Optional[str]) -> CheckoutResult:
        with self.store.transaction():
            now = self.clock()
            items, subtotal = self._read_items(user_id)
            prior_count = count_prior_orders(self.store, user_id)
            coupon = None
            if self.policy.needs_coupon_lookup(prior_count, coupon_code):
                coupon = self.coupons.get_by_code(coupon_code)
            decision = self.policy.decide(
                user_id, prior_count, subtotal, manual_code=coupon_code, coupon=coupon, now=now
            )

            # Writes start here.
            code = self._apply_discount(decision, user_id, now)
            order = self.store.save_order(Order(
                id=new_id(),
                user_id=user_id,
                items=tuple(items),
                subtotal=subtotal,
                discount_amount=decision.amount,
                total=decision.total,
                status=OrderStatus.PENDING,
                discount_code=code,
                created_at=now,
                updated_at=now,
            ))
            for item in items:
                self.ledger.decrement(item.product_id, item.quantity)
            self.store.delete_cart(user_id)

        return self._result(order, decision)

    def _apply_discount(self, decision: DiscountDecision, user_id: str, now: datetime) -> Optional[str]:
        if decision.kind is DiscountKind.LOYALTY:
            minted = self.coupons.mint_loyalty(user_id, decision.order_number, decision.percent, now)
            return minted.code
        if decision.kind is DiscountKind.MANUAL:
            return self.coupons.redeem(decision.coupon, user_id, now).code
        return None

    @staticmethod
    def _result(order: Order, decision: DiscountDecision) -> CheckoutResult:
        applied = None
        if order.discount_code:
            applied = AppliedDiscount(code=order.discount_code, amount=order.discount_amount)
        if decision.kind is DiscountKind.LOYALTY:
            reward = LoyaltyReward(order_number=decision.order_number, percentage=decision.percent)
            message = (
                f"Order placed successfully! You received a {reward.percentage}% discount "
                f"on your {reward.order_number}th order!"
            )
            return CheckoutResult(order, applied, reward, message)
        return CheckoutResult(order, applied, None, "Order placed successfully")
