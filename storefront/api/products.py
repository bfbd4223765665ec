from dataclasses import replace
from typing import List

from fastapi import APIRouter, Depends

from storefront.api.deps import Services, get_services
from storefront.api.schemas import Envelope, ProductCreate, ProductOut, ProductUpdate, RestockIn, StockOut
from storefront.core.auth import require_admin
from storefront.errors import NotFoundError
from storefront.models import Product, money, new_id

router = APIRouter()

@router.get('', response_model=Envelope[List[ProductOut]])
def list_products(category: str | None = None, svc: Services = Depends(get_services)):
    products = svc.store.list_products()
    if category:
        products = [p for p in products if p.category.lower() == category.lower()]
    products.sort(key=lambda p: p.name)
    return Envelope(message="Products retrieved successfully",
                    data=[ProductOut.model_validate(p) for p in products])

@router.get('/{product_id}', response_model=Envelope[ProductOut])
def get_product(product_id: str, svc: Services = Depends(get_services)):
    product = svc.store.get_product(product_id)
    if product is None or not product.active:
        raise NotFoundError("Product", product_id)
    return Envelope(message="Product retrieved successfully", data=ProductOut.model_validate(product))

@router.post('', response_model=Envelope[ProductOut], status_code=201, dependencies=[Depends(require_admin)])
def create_product(payload: ProductCreate, svc: Services = Depends(get_services)):
    now = svc.ledger.clock()
    product = Product(
        id=new_id(), name=payload.name, description=payload.description, category=payload.category,
        price=money(payload.price), stock=payload.stock, active=payload.active,
        created_at=now, updated_at=now,
    )
    with svc.store.transaction():
        product = svc.store.save_product(product)
    return Envelope(message="Product created successfully", data=ProductOut.model_validate(product))

@router.patch('/{product_id}', response_model=Envelope[ProductOut], dependencies=[Depends(require_admin)])
def update_product(product_id: str, payload: ProductUpdate, svc: Services = Depends(get_services)):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "price" in changes:
        changes["price"] = money(changes["price"])
    with svc.store.transaction():
        product = svc.store.get_product(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        product = svc.store.save_product(replace(product, updated_at=svc.ledger.clock(), **changes))
    return Envelope(message="Product updated successfully", data=ProductOut.model_validate(product))

@router.post('/{product_id}/restock', response_model=Envelope[StockOut], dependencies=[Depends(require_admin)])
def restock(product_id: str, payload: RestockIn, svc: Services = Depends(get_services)):
    stock = svc.ledger.restock(product_id, payload.quantity)
    return Envelope(message="Product restocked successfully", data=StockOut(product_id=product_id, stock=stock))
