# fulfillment/api/routers/carts.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fulfillment.api.deps import get_cart_service
from fulfillment.data.database import get_db
from fulfillment.domain.schemas import CartItemIn, CartItemUpdate, CartOut
from fulfillment.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartOut)
def get_cart(
    user_id: str = Query(...),
    db: Session = Depends(get_db),
    svc: CartService = Depends(get_cart_service),
):
    return svc.get_cart(db, user_id)


@router.post("/items", response_model=CartOut, status_code=201)
def add_item(
    payload: CartItemIn,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
    svc: CartService = Depends(get_cart_service),
):
    return svc.add_item(
        db,
        user_id,
        product_id=payload.product_id,
        quantity=payload.quantity,
        variant_id=payload.variant_id,
    )


@router.patch("/items/{item_id}", response_model=CartOut)
def update_item(
    item_id: str,
    payload: CartItemUpdate,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
    svc: CartService = Depends(get_cart_service),
):
    return svc.update_item(db, user_id, item_id, payload.quantity)


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(
    item_id: str,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
    svc: CartService = Depends(get_cart_service),
):
    return svc.remove_item(db, user_id, item_id)
