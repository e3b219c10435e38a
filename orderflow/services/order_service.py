# orderflow/services/order_service.py
import copy
import math
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orderflow.data.models.order import OrderModel
from orderflow.data.models.order_item import OrderItemModel
from orderflow.domain.errors import (
    AuthorizationError,
    ConcurrencyConflict,
    DuplicateOrderNumber,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from orderflow.domain.pricing import PricedLine, compute_totals
from orderflow.domain.status import OrderStatus, can_transition, sources_for
from orderflow.repos.order_repo import OrderRepo
from orderflow.repos.user_repo import UserRepo
from orderflow.services.cart_service import CartService, cart_discount
from orderflow.services.notification_service import EventKind, NotificationService, notify_safely
from orderflow.services.order_sequencer import OrderSequencer, invoice_number
from orderflow.services.stock_ledger import StockLedger
from orderflow.utils.clock import local_today, utcnow
from orderflow.utils.settings import TAX_RATE
from orderflow.utils.logging import get_logger

logger = get_logger(__name__)

PAGE_SIZE = 10
SUMMARY_DAYS = 7


class OrderService:
    """
    Cykl zycia zamowienia.

    pending -> processing -> shipped -> delivered
    pending | processing -> cancelled
    processing -> refunded

    Kazda zmiana statusu to compare-and-swap na kolumnie status, wiec tylko
    jeden rownolegly request wygrywa dane przejscie (np. tylko jeden cancel
    oddaje towar na stan).
    """

    def __init__(self, db: Session, notifier=None, tax_rate: Decimal = TAX_RATE):
        self.db = db
        self.repo = OrderRepo(db)
        self.users = UserRepo(db)
        self.carts = CartService(db)
        self.ledger = StockLedger(db)
        self.sequencer = OrderSequencer(db)
        self.notifier = notifier or NotificationService()
        self.tax_rate = Decimal(str(tax_rate))

    # =====================================================
    # CREATE
    # =====================================================
    def create_order(
        self,
        user_id: int,
        shipping_address: dict,
        payment_method: str = "M-Pesa",
        session_id: str | None = None,
    ) -> OrderModel:
        """
        1. read-repair koszyka (merge, ceny, stany)
        2. wycena (zamrozona na zawsze)
        3. rezerwacja towaru, wszystko albo nic
        4. numer zamowienia + zapis w stanie pending
        5. czyszczenie koszyka, powiadomienie

        Any failure after step 3 releases the reserved stock before re-raising.
        """
        if not shipping_address or not payment_method:
            raise ValidationError("Shipping address and payment method are required")

        cart = self.carts.reconcile(user_id=user_id, session_id=session_id)
        if not cart.items:
            raise ValidationError("No items in cart")

        # gleboka kopia, zamowienie nigdy nie wskazuje na zywy koszyk/produkt
        snapshot = [
            {
                "product_id": i.product_id,
                "name": i.name,
                "image": i.image,
                "price": i.price,
                "quantity": i.quantity,
                "variant": copy.deepcopy(i.variant),
            }
            for i in cart.items
        ]
        lines = [(s["product_id"], s["quantity"]) for s in snapshot]
        totals = compute_totals(
            [PricedLine(price=s["price"], quantity=s["quantity"]) for s in snapshot],
            discount=cart_discount(cart),
            shipping_price=cart.shipping_price or Decimal("0"),
            tax_rate=self.tax_rate,
        )
        coupon = (
            {
                "code": cart.coupon_code,
                "discount_type": cart.coupon_type,
                "discount_value": str(cart.coupon_value),
            }
            if cart.coupon_code
            else None
        )

        self.ledger.reserve_many(lines)

        try:
            order_number = self.sequencer.next_order_number()
            order = OrderModel(
                user_id=user_id,
                order_number=order_number,
                invoice_number=invoice_number(order_number),
                shipping_address=dict(shipping_address),
                payment_method=payment_method,
                status=OrderStatus.PENDING.value,
                coupon_applied=coupon,
                items=[OrderItemModel(**s) for s in snapshot],
                **totals.as_dict(),
            )
            created = self.repo.create_order(order)
        except IntegrityError as e:
            self.repo.rollback()
            self.ledger.release_many(lines)
            if "order_number" not in str(e.orig):
                raise
            logger.error(f"Order number collision for user {user_id}: {e}")
            raise DuplicateOrderNumber("Order number already taken, retry") from e
        except Exception:
            self.repo.rollback()
            self.ledger.release_many(lines)
            raise

        logger.info(f"Order {created.order_number} created for user {user_id}, total {created.total_price}")

        try:
            self.carts.clear_cart(cart)
        except ConcurrencyConflict:
            # zamowienie juz zapisane, koszyk i tak przejdzie read-repair
            logger.warning(f"Cart {cart.id} changed concurrently, not cleared after order {created.order_number}")

        notify_safely(self.notifier, EventKind.ORDER_CONFIRMATION, created, self._recipient(created))
        return created

    # =====================================================
    # QUERY
    # =====================================================
    def get_order(self, order_id: int, user_id: int | None = None) -> OrderModel:
        """user_id=None means an admin/system caller (no ownership check)."""
        order = self.repo.get_order(order_id)

        if not order:
            raise NotFound("Order not found")

        if user_id is not None and order.user_id != user_id:
            raise AuthorizationError("Not authorized to access this order")

        return order

    def get_by_number(self, order_number: str, user_id: int | None = None) -> OrderModel:
        order = self.repo.get_by_number(order_number)

        if not order:
            raise NotFound("Order not found")

        if user_id is not None and order.user_id != user_id:
            raise AuthorizationError("Not authorized to access this order")

        return order

    def list_user_orders(self, user_id: int, page: int = 1) -> dict:
        page = max(1, page)
        count = self.repo.count_by_user(user_id)
        orders = self.repo.list_by_user(user_id, limit=PAGE_SIZE, offset=PAGE_SIZE * (page - 1))

        return {
            "orders": orders,
            "page": page,
            "pages": math.ceil(count / PAGE_SIZE),
            "total_orders": count,
        }

    # =====================================================
    # ADMIN
    # =====================================================
    def list_orders(
        self,
        page: int = 1,
        status: OrderStatus | str | None = None,
        is_paid: bool | None = None,
        is_delivered: bool | None = None,
        keyword: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> dict:
        """All orders, newest first. Dates are order days (inclusive on both ends)."""
        page = max(1, page)
        orders, count = self.repo.search(
            limit=PAGE_SIZE,
            offset=PAGE_SIZE * (page - 1),
            status=OrderStatus(status).value if status else None,
            is_paid=is_paid,
            is_delivered=is_delivered,
            keyword=keyword.strip() if keyword else None,
            start_date=start_date,
            end_date=end_date,
        )

        return {
            "orders": orders,
            "page": page,
            "pages": math.ceil(count / PAGE_SIZE),
            "total_orders": count,
        }

    def summary(self, today: date | None = None) -> dict:
        today = today or local_today()

        total_orders, total_sales = self.repo.count_and_sales()
        today_orders, today_sales = self.repo.count_and_sales(self.repo.placed_on(today))

        week_start = today - timedelta(days=SUMMARY_DAYS - 1)
        sales_by_date = [
            {
                "day": datetime.strptime(prefix, "%Y%m%d").date(),
                "total_sales": Decimal(total),
                "count": count,
            }
            for prefix, total, count in self.repo.paid_sales_by_day(week_start)
        ]

        return {
            "total_orders": total_orders,
            "total_sales": Decimal(total_sales),
            "orders_by_status": self.repo.count_by_status(),
            "today_orders": today_orders,
            "today_sales": Decimal(today_sales),
            "sales_by_date": sales_by_date,
        }

    # =====================================================
    # TRANSITIONS
    # =====================================================
    def cancel(self, order_id: int, user_id: int | None = None, reason: str = "Customer request") -> OrderModel:
        order = self.get_order(order_id, user_id)
        current = OrderStatus(order.status)
        allowed = sources_for(OrderStatus.CANCELLED)

        if current not in allowed:
            raise InvalidTransition(f"Order cannot be cancelled when status is {current.value}")

        lines = [(i.product_id, i.quantity) for i in order.items]

        rowcount = self.repo.compare_and_set_status(
            order.id, allowed, {"status": OrderStatus.CANCELLED.value}
        )
        if rowcount == 0:
            # ktos inny zmienil status pierwszy, towar oddaje tylko zwyciezca
            self.repo.rollback()
            raise InvalidTransition(f"Order {order.order_number} changed status concurrently")

        # zwrot na stan w tej samej transakcji co zmiana statusu
        self.ledger.release_many(lines, commit=False)
        self.repo.commit()
        self.repo.refresh(order)

        logger.info(f"Order {order.order_number} cancelled ({reason}), released {len(lines)} line(s)")

        notify_safely(
            self.notifier,
            EventKind.ORDER_CANCELLED,
            order,
            self._recipient(order),
            {"reason": reason},
        )
        return order

    def mark_delivered(self, order_id: int, extra: dict | None = None) -> OrderModel:
        """
        Idempotent: an already delivered order is returned unchanged.
        ``extra`` (tracking number, notes) is written in the same CAS as the status.
        """
        order = self.get_order(order_id)

        if order.status == OrderStatus.DELIVERED.value:
            return order

        rowcount = self.repo.compare_and_set_status(
            order.id,
            sources_for(OrderStatus.DELIVERED),
            {**(extra or {}), "status": OrderStatus.DELIVERED.value, "delivered_at": utcnow()},
        )
        if rowcount == 0:
            self.repo.rollback()
            self.repo.refresh(order)
            if order.status == OrderStatus.DELIVERED.value:
                return order
            raise InvalidTransition(f"Order cannot be delivered when status is {order.status}")

        self.repo.commit()
        self.repo.refresh(order)

        logger.info(f"Order {order.order_number} delivered")
        notify_safely(self.notifier, EventKind.ORDER_DELIVERED, order, self._recipient(order))
        return order

    def update_status(
        self,
        order_id: int,
        status: OrderStatus | str,
        tracking_number: str | None = None,
        notes: str | None = None,
    ) -> OrderModel:
        """Admin status update with tracking number / notes."""
        target = OrderStatus(status)

        if target is OrderStatus.CANCELLED:
            return self.cancel(order_id, reason=notes or "Cancelled by admin")

        order = self.get_order(order_id)
        current = OrderStatus(order.status)

        values = {}
        if tracking_number:
            values["tracking_number"] = tracking_number
        if notes:
            values["notes"] = notes

        if target is OrderStatus.DELIVERED and current is not OrderStatus.DELIVERED:
            # odrzucone przejscie nie moze zapisac tracking/notes
            if not can_transition(current, target):
                raise InvalidTransition(f"Cannot change order status from {current.value} to {target.value}")
            return self.mark_delivered(order_id, extra=values)

        if target is not current:
            if not can_transition(current, target):
                raise InvalidTransition(f"Cannot change order status from {current.value} to {target.value}")
            values["status"] = target.value

        if not values:
            return order

        self._apply(order, frozenset({current}), values)
        logger.info(f"Order {order.order_number} updated: {current.value} -> {order.status}")

        if target is OrderStatus.SHIPPED and current is not OrderStatus.SHIPPED:
            tracking = order.tracking_number
            notify_safely(
                self.notifier,
                EventKind.ORDER_SHIPPED,
                order,
                self._recipient(order),
                {
                    "tracking_number": tracking or "N/A",
                    "tracking_url": f"https://tracking.example.com/{tracking}" if tracking else None,
                },
            )
        return order

    def _apply(self, order: OrderModel, expected: frozenset[OrderStatus], values: dict) -> None:
        rowcount = self.repo.compare_and_set_status(order.id, expected, values)
        if rowcount == 0:
            self.repo.rollback()
            raise InvalidTransition(f"Order {order.order_number} changed status concurrently")
        self.repo.commit()
        self.repo.refresh(order)

    def _recipient(self, order: OrderModel) -> str | None:
        return self.users.get_email(order.user_id)
