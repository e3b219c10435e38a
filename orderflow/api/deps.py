# orderflow/api/deps.py
from fastapi import Depends
from sqlalchemy.orm import Session

from orderflow.data.database import get_db
from orderflow.services.cart_service import CartService
from orderflow.services.lock_service import LockService
from orderflow.services.notification_service import NotificationService
from orderflow.services.order_service import OrderService
from orderflow.services.payment_client import MpesaClient
from orderflow.services.payment_service import PaymentService


# osobne providery, testy podmieniaja je przez app.dependency_overrides
def get_notifier():
    return NotificationService()


def get_payment_provider():
    return MpesaClient()


def get_lock_service():
    return LockService()


def get_cart_service(db: Session = Depends(get_db)) -> CartService:
    return CartService(db)


def get_order_service(
    db: Session = Depends(get_db),
    notifier=Depends(get_notifier),
) -> OrderService:
    return OrderService(db, notifier=notifier)


def get_payment_service(
    db: Session = Depends(get_db),
    provider=Depends(get_payment_provider),
    lock_service=Depends(get_lock_service),
    notifier=Depends(get_notifier),
) -> PaymentService:
    return PaymentService(db, provider=provider, lock_service=lock_service, notifier=notifier)
