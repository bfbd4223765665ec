"""Order lifecycle: reads, cancellation and admin status changes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

import structlog

from storefront.errors import ConcurrencyConflict, InvalidTransitionError, NotFoundError
from storefront.models import ORDER_TRANSITIONS, Order, OrderStatus, money, utc_now
from storefront.services.checkout import count_prior_orders
from storefront.services.coupons import CouponRegistry
from storefront.services.discount import DiscountPolicy
from storefront.services.events import Publisher, emit
from storefront.services.inventory import InventoryLedger
from storefront.services.paging import Page, paginate
from storefront.services.retry import retry_on_conflict
from storefront.store.base import Store

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OrderStats:
    total_orders: int
    completed_orders: int
    total_spent: Decimal
    total_saved: Decimal
    total_items: int
    next_discount_order: int
    orders_until_discount: int


def _newest_first(orders: list[Order]) -> list[Order]:
    return sorted(orders, key=lambda o: o.created_at, reverse=True)


class OrderService:
    def __init__(
        self,
        store: Store,
        ledger: InventoryLedger,
        coupons: CouponRegistry,
        policy: DiscountPolicy,
        clock: Callable[[], datetime] = utc_now,
        max_retries: int = 3,
        strict_transitions: bool = True,
        publish: Optional[Publisher] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.coupons = coupons
        self.policy = policy
        self.clock = clock
        self.max_retries = max_retries
        self.strict_transitions = strict_transitions
        self.publish = publish

    def _visible(self, order_id: str, requester_id: str, is_admin: bool) -> Order:
        order = self.store.get_order(order_id)
        # Someone else's order looks exactly like a missing one.
        if order is None or (order.user_id != requester_id and not is_admin):
            raise NotFoundError("Order", order_id)
        return order

    def get_order(self, order_id: str, requester_id: str, is_admin: bool = False) -> Order:
        return self._visible(order_id, requester_id, is_admin)

    def history(
        self,
        user_id: str,
        status: Optional[OrderStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page[Order]:
        orders = self.store.list_orders(user_id)
        if status is not None:
            orders = [o for o in orders if o.status == status]
        return paginate(_newest_first(orders), page, limit)

    def all_orders(
        self,
        status: Optional[OrderStatus] = None,
        user_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page[Order]:
        orders = self.store.list_orders(user_id)
        if status is not None:
            orders = [o for o in orders if o.status == status]
        return paginate(_newest_first(orders), page, limit)

    def stats(self, user_id: str) -> OrderStats:
        orders = self.store.list_orders(user_id)
        live = [o for o in orders if o.status != OrderStatus.CANCELLED]
        prior_count = count_prior_orders(self.store, user_id)
        next_discount = self.policy.next_loyalty_order(prior_count)
        return OrderStats(
            total_orders=len(orders),
            completed_orders=len(live),
            total_spent=money(sum((o.total for o in live), Decimal("0"))),
            total_saved=money(sum((o.discount_amount for o in live), Decimal("0"))),
            total_items=sum(o.item_count for o in live),
            next_discount_order=next_discount,
            orders_until_discount=next_discount - prior_count,
        )

    def cancel(self, order_id: str, requester_id: str, is_admin: bool = False) -> Order:
        """Cancel a PENDING order, returning its stock and coupon."""
        previous, order = retry_on_conflict(
            "order.cancel",
            self.max_retries,
            lambda: self._cancel_once(order_id, requester_id, is_admin),
        )
        log.info("order.cancelled", order_id=order.id, user_id=order.user_id,
                 by_admin=is_admin and order.user_id != requester_id,
                 released_code=order.discount_code)
        emit(self.publish, "order.cancelled", order, previous_status=previous.value)
        return order

    def _cancel_once(self, order_id: str, requester_id: str, is_admin: bool) -> tuple[OrderStatus, Order]:
        with self.store.transaction():
            order = self._visible(order_id, requester_id, is_admin)
            if order.status != OrderStatus.PENDING:
                raise InvalidTransitionError(
                    f"Cannot cancel order with status: {order.status.value}",
                    current=order.status.value,
                    requested=OrderStatus.CANCELLED.value,
                )
            now = self.clock()
            if not self.store.update_order_status(order.id, order.status, OrderStatus.CANCELLED, now):
                raise ConcurrencyConflict("order", order.id)
            for item in order.items:
                self.ledger.restore(item.product_id, item.quantity)
            if order.discount_code:
                self.coupons.release(order.discount_code)
            return order.status, self.store.get_order(order.id)

    def update_status(self, order_id: str, new_status: OrderStatus) -> Order:
        """Admin status change.

        In strict mode only the forward transitions are accepted and
        CANCELLED is a full cancellation. Otherwise any status is written
        as-is, with no stock or coupon compensation.
        """
        new_status = OrderStatus(new_status)
        if self.strict_transitions and new_status == OrderStatus.CANCELLED:
            order = self.store.get_order(order_id)
            if order is None:
                raise NotFoundError("Order", order_id)
            return self.cancel(order_id, order.user_id, is_admin=True)

        previous, order = retry_on_conflict(
            "order.status",
            self.max_retries,
            lambda: self._set_status_once(order_id, new_status),
        )
        log.info("order.status_changed", order_id=order.id,
                 previous=previous.value, status=order.status.value)
        emit(self.publish, "order.status_changed", order, previous_status=previous.value)
        return order

    def _set_status_once(self, order_id: str, new_status: OrderStatus) -> tuple[OrderStatus, Order]:
        with self.store.transaction():
            order = self.store.get_order(order_id)
            if order is None:
                raise NotFoundError("Order", order_id)
            if self.strict_transitions and new_status not in ORDER_TRANSITIONS[order.status]:
                raise InvalidTransitionError(
                    f"Cannot change order status from {order.status.value} to {new_status.value}",
                    current=order.status.value,
                    requested=new_status.value,
                )
            if not self.store.update_order_status(order.id, order.status, new_status, self.clock()):
                raise ConcurrencyConflict("order", order.id)
            return order.status, self.store.get_order(order.id)
