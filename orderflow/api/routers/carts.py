# orderflow/api/routers/carts.py
import uuid
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Query, Response

from orderflow.api.deps import get_cart_service
from orderflow.domain.schemas import CartOut, CouponIn, ItemIn, ItemUpdateIn, ShippingMethodIn
from orderflow.services.cart_service import CartService
from orderflow.utils.settings import SESSION_COOKIE_MAX_AGE

router = APIRouter(prefix="/cart", tags=["cart"])

SESSION_COOKIE = "sessionId"


def cart_identity(
    response: Response,
    user_id: Optional[int] = Query(None, gt=0),
    session_query: Optional[str] = Query(None, alias=SESSION_COOKIE),
    session_cookie: Optional[str] = Cookie(None, alias=SESSION_COOKIE),
) -> dict:
    """
    Zalogowany uzytkownik -> user_id (auth poza tym serwisem).
    Gosc -> sessionId z cookie/query, nowy gosc dostaje nowe cookie.
    """
    session_id = session_query or session_cookie

    if not user_id and not session_id:
        session_id = str(uuid.uuid4())
        response.set_cookie(
            SESSION_COOKIE,
            session_id,
            max_age=SESSION_COOKIE_MAX_AGE,
            httponly=True,
            samesite="lax",
        )

    return {"user_id": user_id, "session_id": session_id}


@router.get("", response_model=CartOut)
def get_cart(
    identity: dict = Depends(cart_identity),
    svc: CartService = Depends(get_cart_service),
):
    return svc.summary(svc.reconcile(**identity))


@router.post("/items", response_model=CartOut)
def add_item(
    payload: ItemIn,
    identity: dict = Depends(cart_identity),
    svc: CartService = Depends(get_cart_service),
):
    if payload.session_id:
        identity["session_id"] = payload.session_id

    cart = svc.add_item(
        payload.product_id,
        quantity=payload.quantity,
        variant=payload.variant,
        **identity,
    )
    return svc.summary(cart)


@router.put("/items/{item_id}", response_model=CartOut)
def update_item(
    item_id: int,
    payload: ItemUpdateIn,
    identity: dict = Depends(cart_identity),
    svc: CartService = Depends(get_cart_service),
):
    return svc.summary(svc.update_item(item_id, payload.quantity, **identity))


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(
    item_id: int,
    identity: dict = Depends(cart_identity),
    svc: CartService = Depends(get_cart_service),
):
    return svc.summary(svc.remove_item(item_id, **identity))


@router.delete("/items", response_model=CartOut)
def clear_cart(
    identity: dict = Depends(cart_identity),
    svc: CartService = Depends(get_cart_service),
):
    return svc.summary(svc.clear(**identity))


@router.post("/coupon", response_model=CartOut)
def apply_coupon(
    payload: CouponIn,
    identity: dict = Depends(cart_identity),
    svc: CartService = Depends(get_cart_service),
):
    return svc.summary(svc.apply_coupon(payload.coupon_code, **identity))


@router.delete("/coupon", response_model=CartOut)
def remove_coupon(
    identity: dict = Depends(cart_identity),
    svc: CartService = Depends(get_cart_service),
):
    return svc.summary(svc.remove_coupon(**identity))


@router.post("/shipping-method", response_model=CartOut)
def set_shipping_method(
    payload: ShippingMethodIn,
    identity: dict = Depends(cart_identity),
    svc: CartService = Depends(get_cart_service),
):
    return svc.summary(svc.set_shipping_method(payload.name, payload.price, **identity))
