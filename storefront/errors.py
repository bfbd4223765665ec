"""Exceptions raised by the storefront core.

Every failure kind has its own class carrying a stable ``code`` tag, the HTTP
status it maps to and structured ``details``, so callers can match on type
instead of comparing messages.
"""

from typing import Any


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    code = "STOREFRONT_ERROR"
    status_code = 500

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)


class EmptyCartError(StorefrontError):
    """Raised when checking out a cart that is absent or has no items."""

    code = "EMPTY_CART"
    status_code = 400

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("Cart is empty")


class ProductUnavailableError(StorefrontError):
    """Raised when a cart line points at a missing or inactive product."""

    code = "PRODUCT_UNAVAILABLE"
    status_code = 422

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} is no longer available", product_id=product_id)


class InsufficientStockError(StorefrontError):
    """Raised when a product has fewer units in stock than requested."""

    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, product_id: str, name: str, available: int, requested: int):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for {name}. Available: {available}, Requested: {requested}",
            product_id=product_id,
            available=available,
            requested=requested,
        )


class CouponNotFoundError(StorefrontError):
    """Raised when a manual coupon code does not exist."""

    code = "COUPON_NOT_FOUND"
    status_code = 422

    def __init__(self, coupon_code: str):
        self.coupon_code = coupon_code
        super().__init__("Invalid coupon code", coupon_code=coupon_code)


class CouponAlreadyUsedError(StorefrontError):
    """Raised when redeeming a coupon whose single use is taken."""

    code = "COUPON_ALREADY_USED"
    status_code = 409

    def __init__(self, coupon_code: str):
        self.coupon_code = coupon_code
        super().__init__("Coupon has already been used", coupon_code=coupon_code)


class CouponExpiredError(StorefrontError):
    """Raised when redeeming a coupon past its expiry."""

    code = "COUPON_EXPIRED"
    status_code = 422

    def __init__(self, coupon_code: str):
        self.coupon_code = coupon_code
        super().__init__("Coupon has expired", coupon_code=coupon_code)


class DuplicateCouponError(StorefrontError):
    """Raised when a coupon code is taken or no free code could be drawn."""

    code = "DUPLICATE_COUPON"
    status_code = 409

    def __init__(self, coupon_code: str | None = None):
        self.coupon_code = coupon_code
        msg = "Unable to generate unique coupon code"
        if coupon_code:
            msg = f"Coupon code {coupon_code} already exists"
        super().__init__(msg, coupon_code=coupon_code)


class InvalidTransitionError(StorefrontError):
    """Raised when an order or coupon cannot move to the requested state."""

    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, message: str, current: str | None = None, requested: str | None = None):
        self.current = current
        self.requested = requested
        super().__init__(message, current=current, requested=requested)


class NotFoundError(StorefrontError):
    """Raised when a resource is absent, or hidden from the requester."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str = "Resource", resource_id: str | None = None):
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource} not found"
        if resource_id:
            msg = f"{resource} with ID {resource_id} not found"
        super().__init__(msg)


class ConcurrencyConflict(StorefrontError):
    """Raised when a compare-and-set write lost a race."""

    code = "CONCURRENCY_CONFLICT"
    status_code = 409

    def __init__(self, resource: str, resource_id: str, attempts: int | None = None):
        self.resource = resource
        self.resource_id = resource_id
        self.attempts = attempts
        msg = f"Concurrent update on {resource} {resource_id}"
        if attempts:
            msg = f"{msg}; gave up after {attempts} attempts"
        super().__init__(msg, resource=resource, resource_id=resource_id)


class StorageFailure(StorefrontError):
    """Raised when the backing store itself fails."""

    code = "STORAGE_FAILURE"
    status_code = 503

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Storage failure during {operation}", operation=operation)
