# orderflow/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Any, List, Optional
from decimal import Decimal
from datetime import date, datetime

from orderflow.domain.status import OrderStatus


class ItemIn(BaseModel):
    """Adding a product to the cart."""

    product_id: int = Field(..., gt=0)
    quantity: int = Field(1, gt=0)
    variant: Optional[dict[str, Any]] = None
    session_id: Optional[str] = Field(None, alias="sessionId")

    model_config = ConfigDict(populate_by_name=True)


class ItemUpdateIn(BaseModel):
    # <= 0 usuwa pozycje
    quantity: int


class CouponIn(BaseModel):
    coupon_code: str = Field(..., min_length=1, max_length=50)


class ShippingMethodIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    price: Decimal = Field(Decimal("0"), ge=0)


class CartItemOut(BaseModel):
    id: int
    product_id: int
    name: str
    image: str
    quantity: int
    price: Decimal
    variant: Optional[dict[str, Any]] = None
    subtotal: Decimal


class AppliedCouponOut(BaseModel):
    code: str
    discount_type: str
    discount_value: Decimal


class ShippingMethodOut(BaseModel):
    name: str
    price: Decimal


class CartOut(BaseModel):
    cart_id: int
    user_id: Optional[int] = None
    session_id: Optional[str] = None
    items: List[CartItemOut]
    applied_coupon: Optional[AppliedCouponOut] = None
    shipping_method: Optional[ShippingMethodOut] = None
    subtotal: Decimal
    discount: Decimal
    shipping: Decimal
    total: Decimal
    items_count: int


class ShippingAddress(BaseModel):
    full_name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=1)


class OrderCreate(BaseModel):
    shipping_address: ShippingAddress
    payment_method: str = Field("M-Pesa", min_length=1, max_length=50)
    session_id: Optional[str] = None


class OrderCancelIn(BaseModel):
    cancellation_reason: str = "Customer request"


class OrderStatusIn(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = None
    notes: Optional[str] = None


class OrderItemOut(BaseModel):
    product_id: int
    name: str
    image: str
    price: Decimal
    quantity: int
    variant: Optional[dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    user_id: int
    order_number: str
    invoice_number: str
    status: OrderStatus
    items: List[OrderItemOut]
    shipping_address: ShippingAddress
    payment_method: str
    payment_result: Optional[dict[str, Any]] = None
    coupon_applied: Optional[dict[str, Any]] = None
    items_price: Decimal
    discount_price: Decimal
    shipping_price: Decimal
    tax_price: Decimal
    total_price: Decimal
    is_paid: bool
    paid_at: Optional[datetime] = None
    is_delivered: bool
    delivered_at: Optional[datetime] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderPageOut(BaseModel):
    orders: List[OrderOut]
    page: int
    pages: int
    total_orders: int


class SalesByDateOut(BaseModel):
    day: date
    total_sales: Decimal
    count: int


class OrderSummaryOut(BaseModel):
    total_orders: int
    total_sales: Decimal
    orders_by_status: dict[str, int]
    today_orders: int
    today_sales: Decimal
    sales_by_date: List[SalesByDateOut]


class PaymentInitiateIn(BaseModel):
    order_id: int = Field(..., gt=0)
    phone_number: str = Field(..., min_length=9, max_length=15)


class PaymentInitiateOut(BaseModel):
    success: bool = True
    message: str
    checkout_request_id: str
    merchant_request_id: Optional[str] = None


class PaymentStatusOut(BaseModel):
    success: bool
    message: str
    is_paid: bool
    status: OrderStatus


class ErrorOut(BaseModel):
    kind: str
    detail: str
