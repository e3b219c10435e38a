import os

# przed importem orderflow: engine i celery czytaja env przy imporcie
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ["TAX_RATE"] = "0"

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import orderflow.data.models  # noqa: F401
from orderflow.data.database import Base
from orderflow.data.models import CouponModel, ProductModel, UserModel
from orderflow.services.cart_service import CartService
from orderflow.services.order_service import OrderService
from orderflow.services.payment_client import PaymentInitiation, PaymentState, ProviderStatus
from orderflow.services.payment_service import PaymentService

SHIPPING_ADDRESS = {
    "full_name": "Jan Kowalski",
    "address": "Moi Avenue 12",
    "city": "Nairobi",
    "postal_code": "00100",
    "country": "Kenya",
    "phone_number": "0712345678",
}


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def notify(self, event_kind, order, recipient, payload=None):
        self.events.append((event_kind, order.id, recipient, payload))

    def kinds(self):
        return [e[0] for e in self.events]


class FakeProvider:
    def __init__(self):
        self.initiated = []
        self.queried = []
        self.status = ProviderStatus(state=PaymentState.PENDING, description="The transaction is being processed")

    def initiate(self, order_ref, amount, payer_handle):
        self.initiated.append((order_ref, amount, payer_handle))
        n = len(self.initiated)
        return PaymentInitiation(correlation_id=f"ws_CO_{n:04d}", merchant_request_id=f"mr-{n}")

    def query_status(self, correlation_id):
        self.queried.append(correlation_id)
        return self.status


class FakeLock:
    def __init__(self):
        self.held = {}

    def acquire_order_lock(self, order_id, owner, ttl):
        if order_id in self.held:
            return False
        self.held[order_id] = owner
        return True

    def release_order_lock(self, order_id, owner):
        if self.held.get(order_id) != owner:
            return False
        del self.held[order_id]
        return True


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def file_sessions(tmp_path):
    """File-backed SQLite for tests with real threads (one session per thread)."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'orderflow.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def make_user(db):
    def _make(name="Jan", email="jan@example.com"):
        user = UserModel(name=name, email=email)
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_product(db):
    def _make(price="100.00", stock=5, name="Kubek", **kwargs):
        product = ProductModel(
            name=name,
            image=f"/images/{name.lower()}.png",
            price=Decimal(price),
            count_in_stock=stock,
            **kwargs,
        )
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture
def make_coupon(db):
    def _make(code="SAVE10", discount_type="percentage", value="10", **kwargs):
        coupon = CouponModel(code=code, discount_type=discount_type, discount_value=Decimal(value), **kwargs)
        db.add(coupon)
        db.commit()
        return coupon

    return _make


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def lock():
    return FakeLock()


@pytest.fixture
def cart_service(db):
    return CartService(db)


@pytest.fixture
def order_service(db, notifier):
    return OrderService(db, notifier=notifier)


@pytest.fixture
def payment_service(db, provider, lock, notifier):
    return PaymentService(db, provider=provider, lock_service=lock, notifier=notifier)


@pytest.fixture
def place_order(db, cart_service, order_service):
    """Put `quantity` of product in the user's cart and check out."""

    def _place(user, product, quantity=1):
        cart_service.add_item(product.id, quantity=quantity, user_id=user.id)
        return order_service.create_order(user.id, SHIPPING_ADDRESS)

    return _place
