# orderflow/services/notification_service.py
from orderflow.celery_worker import celery_app
from orderflow.data.models.order import OrderModel
from orderflow.utils.logging import get_logger

logger = get_logger(__name__)


class EventKind:
    ORDER_CONFIRMATION = "order_confirmation"
    PAYMENT_RECEIVED = "payment_received"
    ORDER_SHIPPED = "order_shipped"
    ORDER_DELIVERED = "order_delivered"
    ORDER_CANCELLED = "order_cancelled"


_SUBJECTS = {
    EventKind.ORDER_CONFIRMATION: "Order Confirmation #{order_number}",
    EventKind.PAYMENT_RECEIVED: "Payment received for order #{order_number}",
    EventKind.ORDER_SHIPPED: "Your order #{order_number} has shipped",
    EventKind.ORDER_DELIVERED: "Your order #{order_number} has been delivered",
    EventKind.ORDER_CANCELLED: "Order #{order_number} cancelled",
}


def order_snapshot(order: OrderModel) -> dict:
    # tylko typy serializowalne do JSON, task leci przez brokera
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "invoice_number": order.invoice_number,
        "status": order.status,
        "total_price": str(order.total_price),
    }


class NotificationService:
    """
    Fire-and-forget powiadomienia przez Celery.
    Bledy sa logowane i nigdy nie przerywaja zmiany stanu zamowienia.
    """

    def notify(self, event_kind: str, order: OrderModel, recipient: str | None, payload: dict | None = None) -> None:
        try:
            send_notification_task.delay(event_kind, order_snapshot(order), recipient, payload or {})
        except Exception:
            logger.exception(f"Failed to dispatch {event_kind} notification for order {order.id}")


def notify_safely(notifier, event_kind: str, order: OrderModel, recipient: str | None, payload: dict | None = None) -> None:
    """Call any notifier; a failure is logged and never reaches the caller."""
    try:
        notifier.notify(event_kind, order, recipient, payload)
    except Exception:
        logger.exception(f"Notifier failed for {event_kind} on order {order.id}")


@celery_app.task(name="orderflow.services.notification_service.send_notification_task")
def send_notification_task(event_kind: str, order: dict, recipient: str | None, payload: dict):
    """
    Celery task - w prawdziwym systemie wyslalby email (SMTP / SendGrid).
    Teraz tylko loguje.
    """
    if not recipient:
        logger.warning(f"[NOTIFICATION] No recipient for {event_kind} on order {order.get('order_number')}")
        return {"event": event_kind, "order_id": order.get("order_id"), "status": "skipped"}

    subject = _SUBJECTS.get(event_kind, "Order #{order_number} update").format(**order)
    logger.info(f"[NOTIFICATION] To: {recipient} Subject: {subject} Payload: {payload}")

    return {"event": event_kind, "order_id": order.get("order_id"), "status": "sent"}
