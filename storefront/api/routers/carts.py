#storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import get_db
from storefront.domain.schemas import (
    ItemIn,
    ItemUpdate,
    CartOut,
)
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


def get_service(db: Session):
    return CartService(db=db)


@router.get("", response_model=CartOut)
def get_cart(user_id: int = Query(...), db: Session = Depends(get_db)):
    svc = get_service(db)
    return svc.get_cart(user_id)


@router.post("/items", response_model=CartOut)
def add_item(
    payload: ItemIn,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    return svc.add_product(
        user_id=user_id,
        product_id=payload.product_id,
        quantity=payload.quantity,
    )


@router.put("/items/{product_id}", response_model=CartOut)
def update_item(
    product_id: int,
    payload: ItemUpdate,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    return svc.update_item(user_id, product_id, payload.quantity)


@router.delete("/items/{product_id}", response_model=CartOut)
def remove_item(
    product_id: int,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    return svc.remove_product(user_id, product_id)


@router.delete("", response_model=CartOut)
def clear_cart(user_id: int = Query(...), db: Session = Depends(get_db)):
    svc = get_service(db)
    return svc.clear_cart(user_id)
