"""Tests for the SQLAlchemy store, on SQLite with carts in a fake Redis."""

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import storefront.db.models  # noqa
from storefront.api.deps import build_services
from storefront.db.session import Base, make_session_factory
from storefront.errors import (
    CouponNotFoundError,
    DuplicateCouponError,
    StorageFailure,
)
from storefront.models import Cart, CartItem, Coupon, DiscountType, OrderStatus
from storefront.store.cart_store import RedisCartStore
from storefront.store.sql import SqlStore

from conftest import START, FakeRedis, make_product


@pytest.fixture
def redis_client():
    return FakeRedis()


@pytest.fixture
def sql_store(redis_client):
    engine = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    store = SqlStore(make_session_factory(engine), RedisCartStore(redis_client))
    make_product(store, "widget", "Widget", "10.00", 10)
    make_product(store, "gadget", "Gadget", "25.50", 5)
    yield store
    engine.dispose()


@pytest.fixture
def sql_services(sql_store, clock):
    return build_services(sql_store, clock)


class TestRecords:
    def test_product_round_trip(self, sql_store):
        product = sql_store.get_product("gadget")
        assert product.price == Decimal("25.50")
        assert product.stock == 5
        assert product.created_at == START

    def test_stock_compare_and_set(self, sql_store):
        assert sql_store.update_stock("widget", 10, 7, START)
        assert not sql_store.update_stock("widget", 10, 3, START)
        assert sql_store.get_product("widget").stock == 7

    def test_coupon_compare_and_set(self, sql_store):
        coupon = sql_store.add_coupon(Coupon(id="c1", code="CAS", discount_type=DiscountType.PERCENTAGE,
                                             discount_value=Decimal("10.00"), created_at=START))
        used = coupon.mark_used("user-1", START)
        assert sql_store.replace_coupon(coupon, used)
        assert not sql_store.replace_coupon(coupon, coupon.mark_used("user-2", START))
        stored = sql_store.get_coupon_by_code("CAS")
        assert stored.used_by == "user-1"
        assert stored.used_at == START

    def test_duplicate_coupon(self, sql_store):
        coupon = Coupon(id="c1", code="DUP", discount_type=DiscountType.FIXED_AMOUNT,
                        discount_value=Decimal("1.00"), created_at=START)
        sql_store.add_coupon(coupon)
        with pytest.raises(DuplicateCouponError):
            sql_store.add_coupon(Coupon(id="c2", code="DUP", discount_type=DiscountType.FIXED_AMOUNT,
                                        discount_value=Decimal("1.00"), created_at=START))

    def test_cart_lives_in_redis(self, sql_store, redis_client):
        sql_store.save_cart(Cart("user-1", (CartItem("widget", 2, START), CartItem("gadget", 1, START))))
        assert set(redis_client.hashes["cart:user-1"]) == {"widget", "gadget"}
        cart = sql_store.get_cart("user-1")
        assert cart.find("widget").quantity == 2
        assert sql_store.delete_cart("user-1")
        assert sql_store.get_cart("user-1") is None


class TestCheckoutOnSql:
    def test_checkout_and_cancel(self, sql_store, sql_services, redis_client):
        sql_services.carts.add_item("user-1", "widget", 3)
        order = sql_services.checkout.checkout("user-1").order

        stored = sql_store.get_order(order.id)
        assert stored.total == Decimal("30.00")
        assert [(i.product_id, i.quantity) for i in stored.items] == [("widget", 3)]
        assert sql_store.get_product("widget").stock == 7
        assert "cart:user-1" not in redis_client.hashes

        sql_services.orders.cancel(order.id, "user-1")
        assert sql_store.get_order(order.id).status == OrderStatus.CANCELLED
        assert sql_store.get_product("widget").stock == 10

    def test_loyalty_order(self, sql_store, sql_services):
        for _ in range(3):
            sql_services.carts.add_item("user-1", "widget", 1)
            order = sql_services.checkout.checkout("user-1").order
        assert order.discount_amount == Decimal("1.00")
        assert sql_store.get_coupon_by_code(order.discount_code).is_used

    def test_failed_checkout_keeps_cart_and_stock(self, sql_store, sql_services, monkeypatch):
        sql_services.carts.add_item("user-1", "widget", 1)
        sql_services.carts.add_item("user-1", "gadget", 1)
        real = sql_services.ledger.decrement

        def flaky(product_id, quantity):
            if product_id == "gadget":
                raise StorageFailure("inventory.decrement")
            return real(product_id, quantity)

        monkeypatch.setattr(sql_services.ledger, "decrement", flaky)
        with pytest.raises(StorageFailure):
            sql_services.checkout.checkout("user-1")

        assert sql_store.get_product("widget").stock == 10
        assert sql_store.list_orders() == []
        assert sql_store.get_cart("user-1") is not None

    def test_bad_coupon_rejected(self, sql_store, sql_services):
        sql_services.carts.add_item("user-1", "widget", 1)
        with pytest.raises(CouponNotFoundError):
            sql_services.checkout.checkout("user-1", "NOPE")
        assert sql_store.list_orders() == []
