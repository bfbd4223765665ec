from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fastapi import Request

from storefront.core.config import settings
from storefront.models import utc_now
from storefront.services.cart import CartService
from storefront.services.checkout import CheckoutService
from storefront.services.coupons import CouponRegistry
from storefront.services.discount import DiscountPolicy
from storefront.services.events import Publisher
from storefront.services.inventory import InventoryLedger
from storefront.services.orders import OrderService
from storefront.store.base import Store


@dataclass
class Services:
    store: Store
    carts: CartService
    coupons: CouponRegistry
    ledger: InventoryLedger
    checkout: CheckoutService
    orders: OrderService


def build_services(
    store: Store,
    clock: Callable[[], datetime] = utc_now,
    publish: Optional[Publisher] = None,
) -> Services:
    policy = DiscountPolicy(
        interval=settings.LOYALTY_ORDER_INTERVAL,
        percent=settings.LOYALTY_DISCOUNT_PERCENT,
    )
    coupons = CouponRegistry(store, clock)
    ledger = InventoryLedger(store, clock)
    return Services(
        store=store,
        carts=CartService(store, clock),
        coupons=coupons,
        ledger=ledger,
        checkout=CheckoutService(
            store, policy, coupons, ledger, clock,
            max_retries=settings.CHECKOUT_MAX_RETRIES,
            publish=publish,
        ),
        orders=OrderService(
            store, ledger, coupons, policy, clock,
            max_retries=settings.CHECKOUT_MAX_RETRIES,
            strict_transitions=settings.STRICT_STATUS_TRANSITIONS,
            publish=publish,
        ),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
