from fastapi import APIRouter, Depends

from storefront.api.deps import Services, get_services
from storefront.api.schemas import (
    CartCountOut,
    CartItemAdd,
    CartItemUpdate,
    CartOut,
    CartValidationOut,
    Envelope,
)
from storefront.core.auth import get_current_identity

router = APIRouter()

@router.get("", response_model=Envelope[CartOut])
def get_my_cart(identity: dict = Depends(get_current_identity), svc: Services = Depends(get_services)):
    user_id = identity["sub"]
    snapshot = svc.carts.read_cart(user_id)
    message = "Cart is empty" if snapshot is None or snapshot.is_empty else "Cart retrieved successfully"
    return Envelope(message=message, data=CartOut.from_snapshot(user_id, snapshot))

@router.post("/add", response_model=Envelope[CartOut], status_code=201)
def add_item(payload: CartItemAdd, identity: dict = Depends(get_current_identity),
             svc: Services = Depends(get_services)):
    user_id = identity["sub"]
    snapshot = svc.carts.add_item(user_id, payload.product_id, payload.quantity)
    return Envelope(message="Item added to cart successfully", data=CartOut.from_snapshot(user_id, snapshot))

@router.get("/count", response_model=Envelope[CartCountOut])
def count(identity: dict = Depends(get_current_identity), svc: Services = Depends(get_services)):
    return Envelope(message="Cart count retrieved successfully",
                    data=CartCountOut(count=svc.carts.count(identity["sub"])))

@router.post("/validate", response_model=Envelope[CartValidationOut])
def validate(identity: dict = Depends(get_current_identity), svc: Services = Depends(get_services)):
    result = svc.carts.validate_cart(identity["sub"])
    return Envelope(message="Cart validation completed", data=CartValidationOut.from_result(result))

@router.put("/{product_id}", response_model=Envelope[CartOut])
def update_item(product_id: str, payload: CartItemUpdate, identity: dict = Depends(get_current_identity),
                svc: Services = Depends(get_services)):
    user_id = identity["sub"]
    snapshot = svc.carts.update_item(user_id, product_id, payload.quantity)
    return Envelope(message="Cart item updated successfully", data=CartOut.from_snapshot(user_id, snapshot))

@router.delete("/{product_id}", response_model=Envelope[CartOut])
def remove_item(product_id: str, identity: dict = Depends(get_current_identity),
                svc: Services = Depends(get_services)):
    user_id = identity["sub"]
    snapshot = svc.carts.remove_item(user_id, product_id)
    return Envelope(message="Item removed from cart successfully", data=CartOut.from_snapshot(user_id, snapshot))

@router.delete("", response_model=Envelope[CartOut])
def clear(identity: dict = Depends(get_current_identity), svc: Services = Depends(get_services)):
    user_id = identity["sub"]
    deleted = svc.carts.clear(user_id)
    message = "Cart cleared successfully" if deleted else "Cart was already empty"
    return Envelope(message=message, data=CartOut.from_snapshot(user_id, None))
