from datetime import datetime
from decimal import Decimal
from typing import Annotated, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, model_validator
from pydantic.alias_generators import to_camel

from storefront.models import DiscountType, OrderStatus
from storefront.services.cart import CartLine, CartSnapshot, CartValidation
from storefront.services.paging import Page

T = TypeVar("T")

# Decimal in Python, a 2dp number on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Envelope(ApiModel, Generic[T]):
    message: str
    data: T


class PageOut(ApiModel, Generic[T]):
    items: List[T]
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def of(cls, page: Page, item_model) -> "PageOut":
        return cls(
            items=[item_model.model_validate(i) for i in page.items],
            page=page.page, limit=page.limit, total=page.total, pages=page.pages,
        )


# Products
class ProductOut(ApiModel):
    id: str
    name: str
    description: str
    category: str
    price: Money
    stock: int
    active: bool
    created_at: datetime
    updated_at: datetime

class ProductCreate(ApiModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    category: str = ""
    price: Decimal = Field(gt=0)
    stock: int = Field(ge=0)
    active: bool = True

class ProductUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, gt=0)
    active: Optional[bool] = None

class RestockIn(ApiModel):
    quantity: int = Field(gt=0)

class StockOut(ApiModel):
    product_id: str
    stock: int


# Cart
class CartItemAdd(ApiModel):
    product_id: str
    quantity: int = Field(ge=1)

class CartItemUpdate(ApiModel):
    quantity: int = Field(ge=0)

class CartLineOut(ApiModel):
    product_id: str
    product_name: str
    price: Money
    quantity: int
    subtotal: Money
    added_at: datetime

    @classmethod
    def from_line(cls, line: CartLine) -> "CartLineOut":
        return cls(
            product_id=line.product.id,
            product_name=line.product.name,
            price=line.product.price,
            quantity=line.quantity,
            subtotal=line.subtotal,
            added_at=line.added_at,
        )

class CartOut(ApiModel):
    user_id: str
    items: List[CartLineOut] = []
    total_items: int = 0
    total_amount: Money = Decimal("0.00")

    @classmethod
    def from_snapshot(cls, user_id: str, snapshot: Optional[CartSnapshot]) -> "CartOut":
        if snapshot is None:
            return cls(user_id=user_id)
        return cls(
            user_id=user_id,
            items=[CartLineOut.from_line(line) for line in snapshot.items],
            total_items=snapshot.total_items,
            total_amount=snapshot.total_amount,
        )

class CartCountOut(ApiModel):
    count: int

class CartValidationOut(ApiModel):
    is_valid: bool
    issues: List[str]
    items: List[CartLineOut]
    total_amount: Money

    @classmethod
    def from_result(cls, result: CartValidation) -> "CartValidationOut":
        return cls(
            is_valid=result.is_valid,
            issues=result.issues,
            items=[CartLineOut.from_line(line) for line in result.items],
            total_amount=result.total_amount,
        )


# Orders
class OrderItemOut(ApiModel):
    product_id: str
    product_name: str
    unit_price: Money
    quantity: int
    subtotal: Money

class OrderOut(ApiModel):
    id: str
    user_id: str
    items: List[OrderItemOut]
    subtotal: Money
    discount_amount: Money
    total: Money
    status: OrderStatus
    discount_code: Optional[str] = None
    created_at: datetime
    updated_at: datetime

class CheckoutIn(ApiModel):
    coupon_code: Optional[str] = Field(default=None, max_length=64)

class AppliedDiscountOut(ApiModel):
    code: str
    amount: Money

class CheckoutOut(ApiModel):
    order: OrderOut
    applied_discount: Optional[AppliedDiscountOut] = None

class SpecialDiscountOut(ApiModel):
    is_nth_order: bool = True
    order_number: int
    discount_percentage: int
    message: str

class CheckoutEnvelope(Envelope[CheckoutOut]):
    special_discount: Optional[SpecialDiscountOut] = None

class StatusUpdateIn(ApiModel):
    status: OrderStatus

class OrderStatsOut(ApiModel):
    total_orders: int
    completed_orders: int
    total_spent: Money
    total_saved: Money
    total_items: int
    next_discount_order: int
    orders_until_discount: int


# Coupons
class CouponOut(ApiModel):
    id: str
    code: str
    discount_type: DiscountType
    discount_value: Money
    is_used: bool
    used_by: Optional[str] = None
    used_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: datetime

class PublicCouponOut(ApiModel):
    id: str
    code: str
    discount_type: DiscountType
    discount_value: Money
    expires_at: Optional[datetime] = None
    created_at: datetime

class _DiscountIn(ApiModel):
    discount_type: DiscountType
    discount_value: Decimal = Field(gt=0)
    expires_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _percentage_cap(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("percentage discount cannot exceed 100")
        return self

class CouponGenerateIn(_DiscountIn):
    code: Optional[str] = Field(default=None, min_length=3, max_length=20, pattern=r"^[A-Z0-9]+$")

class BulkGenerateIn(_DiscountIn):
    count: int = Field(ge=1, le=100)
    prefix: str = Field(default="", max_length=10, pattern=r"^[A-Z0-9]*$")

class BulkResultOut(ApiModel):
    generated: List[CouponOut]
    failed: List[str]

class CouponValidateIn(ApiModel):
    code: str = Field(min_length=1, max_length=64)

class CouponCheckOut(ApiModel):
    is_valid: bool
    coupon: CouponOut
    issues: List[str]
