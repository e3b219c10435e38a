# orderflow/api/routers/orders.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Query

from orderflow.api.deps import get_order_service
from orderflow.domain.schemas import (
    OrderCancelIn,
    OrderCreate,
    OrderOut,
    OrderPageOut,
    OrderStatusIn,
    OrderSummaryOut,
)
from orderflow.domain.status import OrderStatus
from orderflow.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderCreate,
    user_id: int = Query(..., gt=0),
    session_cookie: Optional[str] = Cookie(None, alias="sessionId"),
    svc: OrderService = Depends(get_order_service),
):
    """
    Tworzy zamowienie z koszyka uzytkownika (koszyk goscia jest scalany).
    Towar jest rezerwowany, koszyk czyszczony, powiadomienie idzie asynchronicznie.
    """
    return svc.create_order(
        user_id,
        payload.shipping_address.model_dump(),
        payment_method=payload.payment_method,
        session_id=payload.session_id or session_cookie,
    )


# admin (autoryzacja roli poza serwisem)
@router.get("", response_model=OrderPageOut)
def list_orders(
    page: int = Query(1, ge=1),
    status: Optional[OrderStatus] = None,
    is_paid: Optional[bool] = None,
    is_delivered: Optional[bool] = None,
    keyword: Optional[str] = Query(None, max_length=50),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    svc: OrderService = Depends(get_order_service),
):
    return svc.list_orders(
        page,
        status=status,
        is_paid=is_paid,
        is_delivered=is_delivered,
        keyword=keyword,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/summary", response_model=OrderSummaryOut)
def order_summary(svc: OrderService = Depends(get_order_service)):
    return svc.summary()


@router.get("/mine", response_model=OrderPageOut)
def my_orders(
    user_id: int = Query(..., gt=0),
    page: int = Query(1, ge=1),
    svc: OrderService = Depends(get_order_service),
):
    return svc.list_user_orders(user_id, page)


@router.get("/number/{order_number}", response_model=OrderOut)
def get_order_by_number(
    order_number: str,
    user_id: int = Query(..., gt=0),
    svc: OrderService = Depends(get_order_service),
):
    return svc.get_by_number(order_number, user_id)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: int = Query(..., gt=0),
    svc: OrderService = Depends(get_order_service),
):
    return svc.get_order(order_id, user_id)


@router.put("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int,
    payload: OrderCancelIn,
    user_id: int = Query(..., gt=0),
    svc: OrderService = Depends(get_order_service),
):
    return svc.cancel(order_id, user_id, reason=payload.cancellation_reason)


# admin (autoryzacja roli poza serwisem)
@router.put("/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: int,
    payload: OrderStatusIn,
    svc: OrderService = Depends(get_order_service),
):
    return svc.update_status(
        order_id,
        payload.status,
        tracking_number=payload.tracking_number,
        notes=payload.notes,
    )


@router.put("/{order_id}/deliver", response_model=OrderOut)
def mark_delivered(
    order_id: int,
    svc: OrderService = Depends(get_order_service),
):
    return svc.mark_delivered(order_id)
