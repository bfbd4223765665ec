"""Coupon registry: issuing, redeeming and returning single-use coupons."""

from __future__ import annotations

import re
import secrets
import string
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

import structlog

from storefront.errors import (
    ConcurrencyConflict,
    CouponAlreadyUsedError,
    CouponExpiredError,
    DuplicateCouponError,
    InvalidTransitionError,
    NotFoundError,
)
from storefront.models import Coupon, DiscountType, money, new_id, utc_now
from storefront.services.paging import Page, paginate
from storefront.store.base import Store

log = structlog.get_logger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 8
MAX_CODE_ATTEMPTS = 10
MANUAL_CODE_PATTERN = re.compile(r"^[A-Z0-9]+$")

COUPON_STATUSES = ("all", "used", "unused", "expired")


def random_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def loyalty_code(user_id: str, order_number: int) -> str:
    """Code for an automatically minted loyalty coupon.

    The ``_`` separator cannot occur in manually issued codes, which are
    restricted to ``[A-Z0-9]``, so the two namespaces never collide.
    """
    return f"SPECIAL{order_number}ORDER_{user_id[:8]}"


@dataclass
class CouponCheck:
    coupon: Coupon
    is_valid: bool = True
    issues: list[str] = field(default_factory=list)


@dataclass
class BulkResult:
    generated: list[Coupon] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class CouponRegistry:
    def __init__(self, store: Store, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    def get_by_code(self, code: str) -> Optional[Coupon]:
        return self.store.get_coupon_by_code(code)

    def generate(
        self,
        discount_type: DiscountType,
        discount_value: Decimal,
        expires_at: Optional[datetime] = None,
        code: Optional[str] = None,
        prefix: str = "",
    ) -> Coupon:
        if code is not None and not MANUAL_CODE_PATTERN.match(code):
            raise ValueError(f"coupon code must match {MANUAL_CODE_PATTERN.pattern}")
        with self.store.transaction():
            if code is None:
                for _ in range(MAX_CODE_ATTEMPTS):
                    candidate = f"{prefix}{random_code()}"
                    if self.store.get_coupon_by_code(candidate) is None:
                        code = candidate
                        break
                else:
                    raise DuplicateCouponError()
            coupon = self.store.add_coupon(Coupon(
                id=new_id(),
                code=code,
                discount_type=DiscountType(discount_type),
                discount_value=money(discount_value),
                expires_at=expires_at,
                created_at=self.clock(),
            ))
        log.info("coupon.generated", code=coupon.code, discount_type=coupon.discount_type.value,
                 discount_value=str(coupon.discount_value))
        return coupon

    def bulk_generate(
        self,
        count: int,
        discount_type: DiscountType,
        discount_value: Decimal,
        expires_at: Optional[datetime] = None,
        prefix: str = "",
    ) -> BulkResult:
        result = BulkResult()
        for i in range(count):
            try:
                result.generated.append(
                    self.generate(discount_type, discount_value, expires_at, prefix=prefix)
                )
            except DuplicateCouponError as e:
                result.failed.append(f"Coupon {i + 1}: {e.message}")
        return result

    def validate(self, code: str) -> CouponCheck:
        coupon = self.store.get_coupon_by_code(code)
        if coupon is None:
            raise NotFoundError("Coupon", code)
        check = CouponCheck(coupon=coupon)
        if coupon.is_used:
            check.is_valid = False
            check.issues.append("Coupon has already been used")
        if coupon.is_expired(self.clock()):
            check.is_valid = False
            check.issues.append("Coupon has expired")
        return check

    def redeem(self, coupon: Coupon, user_id: str, at: datetime) -> Coupon:
        """Mark ``coupon`` used by ``user_id``; the caller has already validated it."""
        if coupon.is_used:
            raise CouponAlreadyUsedError(coupon.code)
        if coupon.is_expired(at):
            raise CouponExpiredError(coupon.code)
        used = coupon.mark_used(user_id, at)
        if not self.store.replace_coupon(coupon, used):
            raise ConcurrencyConflict("coupon", coupon.code)
        log.info("coupon.redeemed", code=coupon.code, user_id=user_id)
        return used

    def mint_loyalty(self, user_id: str, order_number: int, percent: int, at: datetime) -> Coupon:
        """Create the loyalty coupon for ``order_number``, already used by ``user_id``."""
        base = loyalty_code(user_id, order_number)
        code, suffix = base, 1
        while True:
            existing = self.store.get_coupon_by_code(code)
            if existing is None:
                break
            if not existing.is_used and not existing.is_expired(at):
                # Returned to the pool by a cancellation; issue it again.
                return self.redeem(existing, user_id, at)
            suffix += 1
            code = f"{base}_{suffix}"
        coupon = Coupon(
            id=new_id(),
            code=code,
            discount_type=DiscountType.PERCENTAGE,
            discount_value=money(percent),
            created_at=at,
        ).mark_used(user_id, at)
        try:
            self.store.add_coupon(coupon)
        except DuplicateCouponError as e:
            # Another checkout minted this code between the lookup and the insert.
            raise ConcurrencyConflict("coupon", code) from e
        log.info("coupon.loyalty_minted", code=code, user_id=user_id, order_number=order_number)
        return coupon

    def release(self, code: str) -> Optional[Coupon]:
        """Return a used coupon to the pool. No-op if absent or already unused."""
        coupon = self.store.get_coupon_by_code(code)
        if coupon is None or not coupon.is_used:
            return coupon
        released = coupon.mark_unused()
        if not self.store.replace_coupon(coupon, released):
            raise ConcurrencyConflict("coupon", code)
        log.info("coupon.released", code=code)
        return released

    def disable(self, coupon_id: str) -> Coupon:
        """Expire an unused coupon immediately."""
        with self.store.transaction():
            coupon = self.store.get_coupon(coupon_id)
            if coupon is None:
                raise NotFoundError("Coupon", coupon_id)
            if coupon.is_used:
                raise InvalidTransitionError("Cannot disable a coupon that has been used")
            disabled = replace(coupon, expires_at=self.clock() - timedelta(seconds=1))
            if not self.store.replace_coupon(coupon, disabled):
                raise ConcurrencyConflict("coupon", coupon.code)
        log.info("coupon.disabled", code=coupon.code)
        return disabled

    def available(self) -> list[Coupon]:
        now = self.clock()
        return [c for c in self.store.list_coupons() if not c.is_used and not c.is_expired(now)]

    def used_by(self, user_id: str) -> list[Coupon]:
        return [c for c in self.store.list_coupons() if c.is_used and c.used_by == user_id]

    def list_coupons(
        self,
        status: str = "all",
        discount_type: Optional[DiscountType] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page[Coupon]:
        if status not in COUPON_STATUSES:
            raise ValueError(f"status must be one of {', '.join(COUPON_STATUSES)}")
        now = self.clock()
        coupons = self.store.list_coupons()
        if status == "used":
            coupons = [c for c in coupons if c.is_used]
        elif status == "unused":
            coupons = [c for c in coupons if not c.is_used]
        elif status == "expired":
            coupons = [c for c in coupons if c.is_expired(now)]
        if discount_type is not None:
            coupons = [c for c in coupons if c.discount_type == discount_type]
        coupons.sort(key=lambda c: c.created_at, reverse=True)
        return paginate(coupons, page, limit)
