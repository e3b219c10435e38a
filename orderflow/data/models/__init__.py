#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from orderflow.data.models.user import UserModel
from orderflow.data.models.product import ProductModel
from orderflow.data.models.coupon import CouponModel
from orderflow.data.models.cart import CartModel
from orderflow.data.models.cart_item import CartItemModel
from orderflow.data.models.order import OrderModel
from orderflow.data.models.order_item import OrderItemModel
from orderflow.data.models.order_counter import OrderCounterModel
from orderflow.data.models.pending_payment import PendingPaymentModel, PendingPaymentStatus

__all__ = [
    "UserModel",
    "ProductModel",
    "CouponModel",
    "CartModel",
    "CartItemModel",
    "OrderModel",
    "OrderItemModel",
    "OrderCounterModel",
    "PendingPaymentModel",
    "PendingPaymentStatus",
]
