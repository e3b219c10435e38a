# orderflow/api/routers/payments.py
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from orderflow.api.deps import get_payment_service
from orderflow.domain.schemas import PaymentInitiateIn, PaymentInitiateOut, PaymentStatusOut
from orderflow.services.payment_service import PaymentService

router = APIRouter(prefix="/payments/mpesa", tags=["payments"])


@router.post("/initiate", response_model=PaymentInitiateOut)
def initiate_payment(
    payload: PaymentInitiateIn,
    user_id: int = Query(..., gt=0),
    svc: PaymentService = Depends(get_payment_service),
):
    pending = svc.initiate(payload.order_id, user_id, payload.phone_number)
    return {
        "success": True,
        "message": "STK push sent, confirm the payment on your phone",
        "checkout_request_id": pending.correlation_id,
        "merchant_request_id": pending.merchant_request_id,
    }


@router.get("/status/{checkout_request_id}", response_model=PaymentStatusOut)
def payment_status(
    checkout_request_id: str,
    user_id: int = Query(..., gt=0),
    svc: PaymentService = Depends(get_payment_service),
):
    return svc.check_status(checkout_request_id, user_id)


@router.post("/callback")
def mpesa_callback(
    payload: Optional[dict] = Body(None),
    svc: PaymentService = Depends(get_payment_service),
):
    # zawsze 200, inaczej Safaricom ponawia callback
    return svc.handle_callback(payload)
