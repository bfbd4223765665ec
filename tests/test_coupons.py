"""Tests for the coupon registry."""

from datetime import timedelta
from decimal import Decimal

import pytest

from storefront.errors import (
    ConcurrencyConflict,
    CouponAlreadyUsedError,
    DuplicateCouponError,
    InvalidTransitionError,
    NotFoundError,
)
from storefront.models import DiscountType
from storefront.services.coupons import MANUAL_CODE_PATTERN, loyalty_code, random_code


@pytest.fixture
def registry(services):
    return services.coupons


class TestGenerate:
    def test_random_code_shape(self, registry):
        coupon = registry.generate(DiscountType.PERCENTAGE, Decimal("15"))
        assert len(coupon.code) == 8
        assert MANUAL_CODE_PATTERN.match(coupon.code)
        assert not coupon.is_used

    def test_explicit_code(self, registry):
        coupon = registry.generate(DiscountType.FIXED_AMOUNT, Decimal("5"), code="WELCOME5")
        assert coupon.code == "WELCOME5"
        assert coupon.discount_value == Decimal("5.00")

    def test_duplicate_code(self, registry):
        registry.generate(DiscountType.FIXED_AMOUNT, Decimal("5"), code="TWICE")
        with pytest.raises(DuplicateCouponError):
            registry.generate(DiscountType.FIXED_AMOUNT, Decimal("5"), code="TWICE")

    def test_manual_codes_cannot_use_loyalty_namespace(self, registry):
        with pytest.raises(ValueError):
            registry.generate(DiscountType.PERCENTAGE, Decimal("10"), code=loyalty_code("user-1", 3))

    def test_gives_up_when_no_free_code(self, registry, monkeypatch):
        registry.generate(DiscountType.PERCENTAGE, Decimal("10"), code="AAAAAAAA")
        monkeypatch.setattr("storefront.services.coupons.random_code", lambda: "AAAAAAAA")
        with pytest.raises(DuplicateCouponError):
            registry.generate(DiscountType.PERCENTAGE, Decimal("10"))

    def test_bulk_with_prefix(self, registry):
        result = registry.bulk_generate(5, DiscountType.PERCENTAGE, Decimal("5"), prefix="XMAS")
        assert len(result.generated) == 5
        assert result.failed == []
        assert all(c.code.startswith("XMAS") for c in result.generated)
        assert len({c.code for c in result.generated}) == 5

    def test_random_code_alphabet(self):
        assert MANUAL_CODE_PATTERN.match(random_code(32))


class TestRedeemAndRelease:
    def test_single_use(self, registry, clock):
        coupon = registry.generate(DiscountType.PERCENTAGE, Decimal("10"), code="ONE")
        used = registry.redeem(coupon, "user-1", clock.now)
        assert used.is_used and used.used_by == "user-1" and used.used_at == clock.now
        with pytest.raises(CouponAlreadyUsedError):
            registry.redeem(used, "user-2", clock.now)

    def test_stale_copy_loses(self, registry, clock):
        coupon = registry.generate(DiscountType.PERCENTAGE, Decimal("10"), code="RACE")
        registry.redeem(coupon, "user-1", clock.now)
        with pytest.raises(ConcurrencyConflict):
            registry.redeem(coupon, "user-2", clock.now)

    def test_release_is_idempotent(self, registry, clock, store):
        coupon = registry.generate(DiscountType.PERCENTAGE, Decimal("10"), code="AGAIN")
        registry.redeem(coupon, "user-1", clock.now)
        assert not registry.release("AGAIN").is_used
        assert not registry.release("AGAIN").is_used
        assert registry.release("MISSING") is None

    def test_mint_loyalty_suffixes_when_code_taken(self, registry, clock):
        first = registry.mint_loyalty("user-1", 3, 10, clock.now)
        second = registry.mint_loyalty("user-1", 3, 10, clock.now)
        third = registry.mint_loyalty("user-1", 3, 10, clock.now)
        assert first.code == "SPECIAL3ORDER_user-1"
        assert second.code == "SPECIAL3ORDER_user-1_2"
        assert third.code == "SPECIAL3ORDER_user-1_3"
        assert all(c.is_used for c in (first, second, third))


class TestQueries:
    def test_validate(self, registry, clock):
        registry.generate(DiscountType.PERCENTAGE, Decimal("10"), code="SOON",
                          expires_at=clock.now + timedelta(days=1))
        assert registry.validate("SOON").is_valid
        clock.advance(days=2)
        check = registry.validate("SOON")
        assert not check.is_valid
        assert check.issues == ["Coupon has expired"]

    def test_valid_until_expiry_instant_passes(self, registry, clock):
        registry.generate(DiscountType.PERCENTAGE, Decimal("10"), code="EDGE", expires_at=clock.now)
        assert registry.validate("EDGE").is_valid
        clock.advance(seconds=1)
        assert not registry.validate("EDGE").is_valid

    def test_validate_unknown(self, registry):
        with pytest.raises(NotFoundError):
            registry.validate("NOPE")

    def test_available_and_used_by(self, registry, clock):
        registry.generate(DiscountType.PERCENTAGE, Decimal("10"), code="FREE")
        taken = registry.generate(DiscountType.PERCENTAGE, Decimal("10"), code="TAKEN")
        registry.redeem(taken, "user-1", clock.now)
        assert [c.code for c in registry.available()] == ["FREE"]
        assert [c.code for c in registry.used_by("user-1")] == ["TAKEN"]
        assert registry.used_by("user-2") == []

    def test_list_filters(self, registry, clock):
        registry.generate(DiscountType.PERCENTAGE, Decimal("10"), code="PCT")
        registry.generate(DiscountType.FIXED_AMOUNT, Decimal("3"), code="FIX")
        page = registry.list_coupons(discount_type=DiscountType.FIXED_AMOUNT)
        assert [c.code for c in page.items] == ["FIX"]
        assert registry.list_coupons(status="used").total == 0
        with pytest.raises(ValueError):
            registry.list_coupons(status="bogus")

    def test_disable(self, registry, clock):
        coupon = registry.generate(DiscountType.PERCENTAGE, Decimal("10"), code="STOP")
        disabled = registry.disable(coupon.id)
        assert disabled.is_expired(clock.now)
        assert [c.code for c in registry.available()] == []
        assert registry.list_coupons(status="expired").total == 1

    def test_disable_used_coupon(self, registry, clock):
        coupon = registry.generate(DiscountType.PERCENTAGE, Decimal("10"), code="GONE")
        registry.redeem(coupon, "user-1", clock.now)
        with pytest.raises(InvalidTransitionError):
            registry.disable(coupon.id)
