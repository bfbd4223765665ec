"""Tests for cart reads and mutations."""

from decimal import Decimal

import pytest

from storefront.errors import InsufficientStockError, NotFoundError
from storefront.models import Cart, CartItem


class TestAddItem:
    def test_add_and_merge(self, services, clock):
        services.carts.add_item("user-1", "widget", 2)
        clock.advance(minutes=5)
        snapshot = services.carts.add_item("user-1", "widget", 3)

        assert len(snapshot.items) == 1
        assert snapshot.items[0].quantity == 5
        assert snapshot.items[0].added_at == clock.now.replace(minute=0)
        assert snapshot.total_amount == Decimal("50.00")

    def test_keeps_insertion_order(self, services):
        services.carts.add_item("user-1", "gadget", 1)
        snapshot = services.carts.add_item("user-1", "widget", 1)
        assert [line.product.id for line in snapshot.items] == ["gadget", "widget"]
        assert snapshot.total_items == 2

    def test_merged_quantity_checked_against_stock(self, store, services):
        services.carts.add_item("user-1", "gadget", 4)
        with pytest.raises(InsufficientStockError) as exc:
            services.carts.add_item("user-1", "gadget", 2)
        assert exc.value.requested == 6
        assert store.get_cart("user-1").find("gadget").quantity == 4

    def test_inactive_product_rejected(self, services):
        with pytest.raises(NotFoundError):
            services.carts.add_item("user-1", "retired", 1)

    def test_quantity_must_be_positive(self, services):
        with pytest.raises(ValueError):
            services.carts.add_item("user-1", "widget", 0)


class TestUpdateAndRemove:
    def test_update_quantity(self, services):
        services.carts.add_item("user-1", "widget", 1)
        snapshot = services.carts.update_item("user-1", "widget", 4)
        assert snapshot.items[0].quantity == 4

    def test_zero_removes(self, store, services):
        services.carts.add_item("user-1", "widget", 1)
        services.carts.add_item("user-1", "gadget", 1)
        snapshot = services.carts.update_item("user-1", "widget", 0)
        assert [line.product.id for line in snapshot.items] == ["gadget"]

    def test_update_missing_line(self, services):
        with pytest.raises(NotFoundError):
            services.carts.update_item("user-1", "widget", 2)

    def test_remove_missing_line(self, services):
        with pytest.raises(NotFoundError):
            services.carts.remove_item("user-1", "widget")

    def test_clear(self, services):
        services.carts.add_item("user-1", "widget", 1)
        assert services.carts.clear("user-1") is True
        assert services.carts.clear("user-1") is False
        assert services.carts.read_cart("user-1") is None
        assert services.carts.count("user-1") == 0


class TestReadAndValidate:
    def test_read_drops_unavailable_lines(self, store, services):
        store.save_cart(Cart("user-1", (CartItem("widget", 2), CartItem("retired", 1), CartItem("ghost", 1))))
        snapshot = services.carts.read_cart("user-1")
        assert [line.product.id for line in snapshot.items] == ["widget"]
        assert services.carts.count("user-1") == 2

    def test_validate_reports_every_issue(self, store, services):
        store.save_cart(Cart("user-1", (
            CartItem("widget", 2),
            CartItem("retired", 1),
            CartItem("ghost", 1),
            CartItem("gadget", 9),
        )))
        result = services.carts.validate_cart("user-1")

        assert not result.is_valid
        assert result.issues == [
            'Product "Retired Thing" is no longer available',
            'Product "ghost" no longer exists',
            'Insufficient stock for "Gadget". Available: 5, Requested: 9',
        ]
        assert [line.product.id for line in result.items] == ["widget"]
        assert result.total_amount == Decimal("20.00")

    def test_validate_empty_cart(self, services):
        result = services.carts.validate_cart("user-1")
        assert result.is_valid
        assert result.items == []
