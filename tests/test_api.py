from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from orderflow.api import create_app
from orderflow.api.deps import get_lock_service, get_notifier, get_payment_provider
from orderflow.data.database import get_db

from conftest import SHIPPING_ADDRESS


@pytest.fixture
def client(session_factory, notifier, provider, lock):
    app = create_app()

    def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_payment_provider] = lambda: provider
    app.dependency_overrides[get_lock_service] = lambda: lock

    with TestClient(app) as c:
        yield c


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def product(make_product):
    return make_product(price="100", stock=5)


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_new_guest_gets_session_cookie(client):
    resp = client.get("/cart")

    assert resp.status_code == 200
    assert resp.cookies.get("sessionId")
    assert resp.json()["items"] == []


def test_guest_cart_follows_cookie(client, product):
    client.get("/cart")

    added = client.post("/cart/items", json={"product_id": product.id, "quantity": 2})
    again = client.get("/cart")

    assert added.status_code == 200
    assert again.json()["cart_id"] == added.json()["cart_id"]
    assert Decimal(again.json()["subtotal"]) == Decimal("200")
    assert again.json()["items_count"] == 2


def test_cart_item_update_and_remove(client, user, product):
    cart = client.post(f"/cart/items?user_id={user.id}", json={"product_id": product.id}).json()
    item_id = cart["items"][0]["id"]

    updated = client.put(f"/cart/items/{item_id}?user_id={user.id}", json={"quantity": 9})
    assert updated.json()["items"][0]["quantity"] == 5

    removed = client.delete(f"/cart/items/{item_id}?user_id={user.id}")
    assert removed.json()["items"] == []

    missing = client.delete(f"/cart/items/{item_id}?user_id={user.id}")
    assert missing.status_code == 404
    assert missing.json()["kind"] == "not_found"


def test_add_over_stock_is_400(client, user, product):
    resp = client.post(f"/cart/items?user_id={user.id}", json={"product_id": product.id, "quantity": 6})

    assert resp.status_code == 400
    assert resp.json()["kind"] == "validation_error"


def test_coupon_and_shipping(client, user, product, make_coupon):
    make_coupon(code="FREESHIP", discount_type="shipping", value="0")
    client.post(f"/cart/items?user_id={user.id}", json={"product_id": product.id})
    client.post(f"/cart/shipping-method?user_id={user.id}", json={"name": "Express", "price": "12.00"})

    with_coupon = client.post(f"/cart/coupon?user_id={user.id}", json={"coupon_code": "freeship"}).json()
    assert Decimal(with_coupon["shipping"]) == Decimal("0")
    assert Decimal(with_coupon["total"]) == Decimal("100")

    without = client.delete(f"/cart/coupon?user_id={user.id}").json()
    assert without["applied_coupon"] is None
    assert Decimal(without["total"]) == Decimal("112")


def test_checkout_with_empty_cart(client, user):
    resp = client.post(f"/orders?user_id={user.id}", json={"shipping_address": SHIPPING_ADDRESS})

    assert resp.status_code == 400
    assert resp.json() == {"kind": "validation_error", "detail": "No items in cart"}


def test_order_flow(client, notifier, user, product, make_user):
    client.post(f"/cart/items?user_id={user.id}", json={"product_id": product.id, "quantity": 2})

    created = client.post(f"/orders?user_id={user.id}", json={"shipping_address": SHIPPING_ADDRESS})
    assert created.status_code == 201
    order = created.json()
    assert order["status"] == "pending"
    assert Decimal(order["total_price"]) == Decimal("200")
    assert order["is_paid"] is False

    by_number = client.get(f"/orders/number/{order['order_number']}?user_id={user.id}")
    assert by_number.json()["id"] == order["id"]

    mine = client.get(f"/orders/mine?user_id={user.id}").json()
    assert mine["total_orders"] == 1

    other = make_user(name="Anna", email="anna@example.com")
    forbidden = client.get(f"/orders/{order['id']}?user_id={other.id}")
    assert forbidden.status_code == 403
    assert forbidden.json()["kind"] == "authorization_error"

    cancelled = client.put(f"/orders/{order['id']}/cancel?user_id={user.id}", json={})
    assert cancelled.json()["status"] == "cancelled"

    again = client.put(f"/orders/{order['id']}/cancel?user_id={user.id}", json={})
    assert again.status_code == 409
    assert again.json()["kind"] == "invalid_transition"

    assert "order_confirmation" in notifier.kinds()
    assert "order_cancelled" in notifier.kinds()


def test_admin_status_and_delivery(client, user, product):
    client.post(f"/cart/items?user_id={user.id}", json={"product_id": product.id})
    order = client.post(f"/orders?user_id={user.id}", json={"shipping_address": SHIPPING_ADDRESS}).json()

    client.put(f"/orders/{order['id']}/status", json={"status": "processing"})
    shipped = client.put(f"/orders/{order['id']}/status", json={"status": "shipped", "tracking_number": "TRK-1"})
    assert shipped.json()["tracking_number"] == "TRK-1"

    first = client.put(f"/orders/{order['id']}/deliver").json()
    second = client.put(f"/orders/{order['id']}/deliver").json()
    assert first["is_delivered"] is True
    assert second["delivered_at"] == first["delivered_at"]


def test_unknown_order_is_404(client, user):
    resp = client.get(f"/orders/9999?user_id={user.id}")

    assert resp.status_code == 404
    assert resp.json()["kind"] == "not_found"


def test_payment_flow(client, provider, user, product):
    client.post(f"/cart/items?user_id={user.id}", json={"product_id": product.id})
    order = client.post(f"/orders?user_id={user.id}", json={"shipping_address": SHIPPING_ADDRESS}).json()

    initiated = client.post(
        f"/payments/mpesa/initiate?user_id={user.id}",
        json={"order_id": order["id"], "phone_number": "0712345678"},
    )
    assert initiated.status_code == 200
    checkout_id = initiated.json()["checkout_request_id"]

    pending = client.get(f"/payments/mpesa/status/{checkout_id}?user_id={user.id}").json()
    assert pending["is_paid"] is False

    payload = {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "mr-1",
                "CheckoutRequestID": checkout_id,
                "ResultCode": 0,
                "ResultDesc": "ok",
                "CallbackMetadata": {"Item": [{"Name": "MpesaReceiptNumber", "Value": "QHX81ZK2TF"}]},
            }
        }
    }
    ack = client.post("/payments/mpesa/callback", json=payload)
    assert ack.status_code == 200
    assert ack.json() == {"ResultCode": 0, "ResultDesc": "Success"}

    paid = client.get(f"/payments/mpesa/status/{checkout_id}?user_id={user.id}").json()
    assert paid == {"success": True, "message": "Payment successful", "is_paid": True, "status": "processing"}

    order_after = client.get(f"/orders/{order['id']}?user_id={user.id}").json()
    assert order_after["payment_result"]["id"] == "QHX81ZK2TF"


def test_callback_with_garbage_is_acknowledged(client):
    resp = client.post("/payments/mpesa/callback", json={"hello": "world"})

    assert resp.status_code == 200
    assert resp.json()["ResultCode"] == 0


def test_admin_order_list_and_summary(client, user, product):
    client.post(f"/cart/items?user_id={user.id}", json={"product_id": product.id, "quantity": 2})
    order = client.post(f"/orders?user_id={user.id}", json={"shipping_address": SHIPPING_ADDRESS}).json()

    listed = client.get("/orders", params={"status": "pending", "keyword": order["order_number"]})
    assert listed.status_code == 200
    assert [o["id"] for o in listed.json()["orders"]] == [order["id"]]

    assert client.get("/orders", params={"is_paid": "true"}).json()["total_orders"] == 0
    assert client.get("/orders", params={"status": "lost"}).status_code == 422

    summary = client.get("/orders/summary")
    assert summary.status_code == 200
    body = summary.json()
    assert body["total_orders"] == 1
    assert body["today_orders"] == 1
    assert Decimal(body["total_sales"]) == Decimal("0")
    assert body["orders_by_status"] == {"pending": 1}
    assert body["sales_by_date"] == []
