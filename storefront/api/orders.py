from typing import Optional

from fastapi import APIRouter, Depends, Query

from storefront.api.deps import Services, get_services
from storefront.api.schemas import (
    AppliedDiscountOut,
    CheckoutEnvelope,
    CheckoutIn,
    CheckoutOut,
    Envelope,
    OrderOut,
    OrderStatsOut,
    PageOut,
    SpecialDiscountOut,
    StatusUpdateIn,
)
from storefront.core.auth import get_current_identity, is_admin, require_admin
from storefront.models import OrderStatus

checkout_router = APIRouter()
router = APIRouter()

@checkout_router.post("", response_model=CheckoutEnvelope, response_model_exclude_none=True, status_code=201)
def checkout(payload: Optional[CheckoutIn] = None, identity: dict = Depends(get_current_identity),
             svc: Services = Depends(get_services)):
    code = payload.coupon_code if payload else None
    result = svc.checkout.checkout(identity["sub"], code)
    applied = None
    if result.applied_discount:
        applied = AppliedDiscountOut(code=result.applied_discount.code, amount=result.applied_discount.amount)
    special = None
    if result.loyalty_reward:
        reward = result.loyalty_reward
        special = SpecialDiscountOut(order_number=reward.order_number,
                                     discount_percentage=reward.percentage, message=reward.message)
    return CheckoutEnvelope(
        message=result.message,
        data=CheckoutOut(order=OrderOut.model_validate(result.order), applied_discount=applied),
        special_discount=special,
    )

# Fixed paths first so they are not captured by /{order_id}
@router.get("/history", response_model=Envelope[PageOut[OrderOut]])
def history(status: Optional[OrderStatus] = None, page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=50),
            identity: dict = Depends(get_current_identity), svc: Services = Depends(get_services)):
    result = svc.orders.history(identity["sub"], status=status, page=page, limit=limit)
    return Envelope(message="Order history retrieved successfully", data=PageOut[OrderOut].of(result, OrderOut))

@router.get("/stats/summary", response_model=Envelope[OrderStatsOut])
def stats(identity: dict = Depends(get_current_identity), svc: Services = Depends(get_services)):
    summary = svc.orders.stats(identity["sub"])
    return Envelope(message="Order statistics retrieved successfully", data=OrderStatsOut.model_validate(summary))

@router.get("/admin/all", response_model=Envelope[PageOut[OrderOut]], dependencies=[Depends(require_admin)])
def all_orders(status: Optional[OrderStatus] = None, user_id: Optional[str] = Query(None, alias="userId"),
               page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
               svc: Services = Depends(get_services)):
    result = svc.orders.all_orders(status=status, user_id=user_id, page=page, limit=limit)
    return Envelope(message="Orders retrieved successfully", data=PageOut[OrderOut].of(result, OrderOut))

@router.put("/admin/{order_id}/status", response_model=Envelope[OrderOut], dependencies=[Depends(require_admin)])
def update_status(order_id: str, payload: StatusUpdateIn, svc: Services = Depends(get_services)):
    order = svc.orders.update_status(order_id, payload.status)
    return Envelope(message="Order status updated successfully", data=OrderOut.model_validate(order))

@router.get("/{order_id}", response_model=Envelope[OrderOut])
def get_order(order_id: str, identity: dict = Depends(get_current_identity), svc: Services = Depends(get_services)):
    order = svc.orders.get_order(order_id, identity["sub"], is_admin(identity))
    return Envelope(message="Order retrieved successfully", data=OrderOut.model_validate(order))

@router.put("/{order_id}/cancel", response_model=Envelope[OrderOut])
def cancel(order_id: str, identity: dict = Depends(get_current_identity), svc: Services = Depends(get_services)):
    order = svc.orders.cancel(order_id, identity["sub"], is_admin(identity))
    return Envelope(message="Order cancelled successfully", data=OrderOut.model_validate(order))
