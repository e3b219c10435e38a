from types import SimpleNamespace

from orderflow.services import notification_service
from orderflow.services.notification_service import (
    EventKind,
    NotificationService,
    notify_safely,
    send_notification_task,
)


def make_order():
    return SimpleNamespace(
        id=7,
        order_number="202610190007",
        invoice_number="INV-202610190007",
        status="pending",
        total_price="230.00",
    )


def test_notify_dispatches_celery_task(monkeypatch):
    calls = []
    monkeypatch.setattr(send_notification_task, "delay", lambda *args: calls.append(args))

    NotificationService().notify(EventKind.ORDER_CONFIRMATION, make_order(), "jan@example.com")

    event, snapshot, recipient, payload = calls[0]
    assert event == EventKind.ORDER_CONFIRMATION
    assert snapshot["order_number"] == "202610190007"
    assert recipient == "jan@example.com"
    assert payload == {}


def test_broker_failure_is_swallowed(monkeypatch):
    def broken(*args):
        raise ConnectionError("broker down")

    monkeypatch.setattr(send_notification_task, "delay", broken)

    NotificationService().notify(EventKind.ORDER_SHIPPED, make_order(), "jan@example.com")


def test_notify_safely_swallows_notifier_errors():
    class Broken:
        def notify(self, *args):
            raise RuntimeError("boom")

    notify_safely(Broken(), EventKind.ORDER_CANCELLED, make_order(), None)


def test_task_renders_subject(caplog):
    with caplog.at_level("INFO", logger=notification_service.logger.name):
        result = send_notification_task(
            EventKind.ORDER_SHIPPED,
            {"order_id": 7, "order_number": "202610190007"},
            "jan@example.com",
            {"tracking_number": "TRK-1"},
        )

    assert result == {"event": EventKind.ORDER_SHIPPED, "order_id": 7, "status": "sent"}
    assert "Your order #202610190007 has shipped" in caplog.text


def test_task_without_recipient_is_skipped():
    result = send_notification_task(EventKind.ORDER_DELIVERED, {"order_id": 7, "order_number": "1"}, None, {})

    assert result["status"] == "skipped"
