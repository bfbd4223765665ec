"""Tests for concurrent checkouts against one store."""

import threading
from decimal import Decimal

from storefront.errors import CouponAlreadyUsedError, DuplicateCouponError, InsufficientStockError
from storefront.models import DiscountType

from conftest import make_product


def run_all(fns):
    errors = []
    results = []
    start = threading.Barrier(len(fns))

    def runner(fn):
        start.wait()
        try:
            results.append(fn())
        except Exception as e:  # collected for assertions
            errors.append(e)

    threads = [threading.Thread(target=runner, args=(fn,)) for fn in fns]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


class TestConcurrentCheckout:
    def test_no_oversell(self, store, services):
        make_product(store, "scarce", "Scarce", "9.99", 3)
        users = [f"user-{i}" for i in range(10)]
        for user in users:
            services.carts.add_item(user, "scarce", 1)

        results, errors = run_all([lambda u=u: services.checkout.checkout(u) for u in users])

        assert len(results) == 3
        assert len(errors) == 7
        assert all(isinstance(e, InsufficientStockError) for e in errors)
        assert store.get_product("scarce").stock == 0
        assert len(store.list_orders()) == 3

    def test_coupon_redeemed_once(self, store, services):
        services.coupons.generate(DiscountType.FIXED_AMOUNT, Decimal("2"), code="ONLYONE")
        users = [f"user-{i}" for i in range(8)]
        for user in users:
            services.carts.add_item(user, "widget", 1)

        results, errors = run_all([lambda u=u: services.checkout.checkout(u, "ONLYONE") for u in users])

        assert len(results) == 1
        assert all(isinstance(e, CouponAlreadyUsedError) for e in errors)
        assert results[0].order.discount_code == "ONLYONE"
        assert store.get_product("widget").stock == 9


class TestLoyaltyCodeRace:
    def test_duplicate_mint_is_retried(self, store, services, place_orders, monkeypatch):
        place_orders("user-1", 2)
        services.carts.add_item("user-1", "widget", 1)
        real = store.add_coupon
        calls = []

        def racing(coupon):
            calls.append(coupon.code)
            if len(calls) == 1:
                raise DuplicateCouponError(coupon.code)
            return real(coupon)

        monkeypatch.setattr(store, "add_coupon", racing)
        result = services.checkout.checkout("user-1")

        assert calls == ["SPECIAL3ORDER_user-1", "SPECIAL3ORDER_user-1"]
        assert result.order.discount_code == "SPECIAL3ORDER_user-1"
        assert result.order.discount_amount == Decimal("1.00")
        assert len(store.list_orders("user-1")) == 3
