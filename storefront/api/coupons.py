from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from storefront.api.deps import Services, get_services
from storefront.api.schemas import (
    BulkGenerateIn,
    BulkResultOut,
    CouponCheckOut,
    CouponGenerateIn,
    CouponOut,
    CouponValidateIn,
    Envelope,
    PageOut,
    PublicCouponOut,
)
from storefront.core.auth import get_current_identity, require_admin
from storefront.models import DiscountType
from storefront.services.coupons import COUPON_STATUSES

router = APIRouter()

@router.post("/generate", response_model=Envelope[CouponOut], status_code=201, dependencies=[Depends(require_admin)])
def generate(payload: CouponGenerateIn, svc: Services = Depends(get_services)):
    coupon = svc.coupons.generate(payload.discount_type, payload.discount_value,
                                  expires_at=payload.expires_at, code=payload.code)
    return Envelope(message="Coupon generated successfully", data=CouponOut.model_validate(coupon))

@router.post("/admin/bulk-generate", response_model=Envelope[BulkResultOut], status_code=201,
             dependencies=[Depends(require_admin)])
def bulk_generate(payload: BulkGenerateIn, svc: Services = Depends(get_services)):
    result = svc.coupons.bulk_generate(payload.count, payload.discount_type, payload.discount_value,
                                       expires_at=payload.expires_at, prefix=payload.prefix)
    return Envelope(
        message=(f"Bulk coupon generation completed. Generated: {len(result.generated)}, "
                 f"Failed: {len(result.failed)}"),
        data=BulkResultOut(generated=[CouponOut.model_validate(c) for c in result.generated],
                           failed=result.failed),
    )

@router.post("/validate", response_model=Envelope[CouponCheckOut])
def validate(payload: CouponValidateIn, identity: dict = Depends(get_current_identity),
             svc: Services = Depends(get_services)):
    check = svc.coupons.validate(payload.code)
    message = "Coupon is valid" if check.is_valid else "Coupon is not valid"
    return Envelope(message=message, data=CouponCheckOut(
        is_valid=check.is_valid, coupon=CouponOut.model_validate(check.coupon), issues=check.issues,
    ))

@router.get("/my-coupons", response_model=Envelope[List[PublicCouponOut]])
def my_coupons(identity: dict = Depends(get_current_identity), svc: Services = Depends(get_services)):
    return Envelope(message="Available coupons retrieved successfully",
                    data=[PublicCouponOut.model_validate(c) for c in svc.coupons.available()])

@router.get("/used-coupons", response_model=Envelope[List[CouponOut]])
def used_coupons(identity: dict = Depends(get_current_identity), svc: Services = Depends(get_services)):
    return Envelope(message="Used coupons retrieved successfully",
                    data=[CouponOut.model_validate(c) for c in svc.coupons.used_by(identity["sub"])])

@router.get("/admin/all", response_model=Envelope[PageOut[CouponOut]], dependencies=[Depends(require_admin)])
def all_coupons(status: str = Query("all", pattern="^(" + "|".join(COUPON_STATUSES) + ")$"),
                discount_type: Optional[DiscountType] = Query(None, alias="discountType"),
                page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
                svc: Services = Depends(get_services)):
    result = svc.coupons.list_coupons(status=status, discount_type=discount_type, page=page, limit=limit)
    return Envelope(message="Coupons retrieved successfully", data=PageOut[CouponOut].of(result, CouponOut))

@router.delete("/admin/{coupon_id}", response_model=Envelope[CouponOut], dependencies=[Depends(require_admin)])
def disable(coupon_id: str, svc: Services = Depends(get_services)):
    coupon = svc.coupons.disable(coupon_id)
    return Envelope(message="Coupon disabled successfully", data=CouponOut.model_validate(coupon))
