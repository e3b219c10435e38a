# orderflow/services/payment_service.py
import uuid
from dataclasses import dataclass, asdict
from datetime import timedelta
from enum import Enum

from sqlalchemy.orm import Session

from orderflow.data.models.pending_payment import PendingPaymentModel, PendingPaymentStatus
from orderflow.domain.errors import (
    AlreadyApplied,
    AuthorizationError,
    Conflict,
    Expired,
    InvalidTransition,
    NotFound,
)
from orderflow.domain.status import OrderStatus
from orderflow.repos.order_repo import OrderRepo
from orderflow.repos.payment_repo import PaymentRepo
from orderflow.repos.user_repo import UserRepo
from orderflow.services.lock_service import LockService
from orderflow.services.notification_service import EventKind, NotificationService, notify_safely
from orderflow.services.payment_client import MpesaClient, PaymentState, format_phone, parse_callback
from orderflow.utils.clock import as_utc, utcnow
from orderflow.utils.settings import (
    PAYMENT_LOCK_TTL_SECONDS,
    PENDING_PAYMENT_RETENTION_SECONDS,
    PENDING_PAYMENT_TTL_SECONDS,
)
from orderflow.utils.logging import get_logger

logger = get_logger(__name__)

# dostawca zawsze dostaje sukces, inaczej ponawia callback
CALLBACK_ACK = {"ResultCode": 0, "ResultDesc": "Success"}


class ConfirmOutcome(str, Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    ORDER_NOT_FOUND = "order_not_found"
    EXPIRED = "expired"
    # platnosc przyszla, ale zamowienie nie jest juz pending (np. anulowane)
    REJECTED = "rejected"


@dataclass(frozen=True)
class PaymentResult:
    id: str
    status: str = "COMPLETED"
    payment_method: str = "M-Pesa"
    email_address: str = ""


class PaymentService:
    """
    Idempotentne potwierdzanie platnosci.

    Kotwica idempotencji to wiersz pending_payments: confirm konsumuje go
    warunkowym UPDATE (status pending -> consumed). Tylko zwyciezca tego
    UPDATE zmienia zamowienie, w tej samej transakcji. Kazde kolejne
    potwierdzenie (duplikat callbacku, polling) dostaje ALREADY_APPLIED.
    """

    def __init__(
        self,
        db: Session,
        provider=None,
        lock_service=None,
        notifier=None,
        ttl_seconds: int = PENDING_PAYMENT_TTL_SECONDS,
        retention_seconds: int = PENDING_PAYMENT_RETENTION_SECONDS,
    ):
        self.db = db
        self.repo = PaymentRepo(db)
        self.orders = OrderRepo(db)
        self.users = UserRepo(db)
        self.provider = provider or MpesaClient()
        self.lock_service = lock_service or LockService()
        self.notifier = notifier or NotificationService()
        self.ttl_seconds = ttl_seconds
        self.retention_seconds = retention_seconds

    # =====================================================
    # INITIATE
    # =====================================================
    def initiate(self, order_id: int, user_id: int, payer_handle: str) -> PendingPaymentModel:
        order = self.orders.get_order(order_id)

        if not order:
            raise NotFound("Order not found")

        if order.user_id != user_id:
            raise AuthorizationError("Not authorized to pay for this order")

        if order.is_paid:
            raise AlreadyApplied("Order is already paid")

        if order.status != OrderStatus.PENDING.value:
            raise InvalidTransition(f"Order cannot be paid when status is {order.status}")

        owner = uuid.uuid4().hex
        if not self.lock_service.acquire_order_lock(order.id, owner, PAYMENT_LOCK_TTL_SECONDS):
            raise Conflict("Payment initiation already in progress for this order")

        try:
            initiation = self.provider.initiate(order.order_number, order.total_price, payer_handle)

            now = utcnow()
            pending = PendingPaymentModel(
                correlation_id=initiation.correlation_id,
                merchant_request_id=initiation.merchant_request_id,
                order_id=order.id,
                amount=order.total_price,
                payer_handle=format_phone(payer_handle),
                status=PendingPaymentStatus.PENDING,
                created_at=now,
                expires_at=now + timedelta(seconds=self.ttl_seconds),
            )
            try:
                self.repo.add_pending(pending)
            except Exception:
                self.repo.rollback()
                logger.error(
                    f"STK push {initiation.correlation_id} sent for order {order.order_number} "
                    f"but pending payment could not be stored"
                )
                raise
        finally:
            self.lock_service.release_order_lock(order.id, owner)

        logger.info(f"Payment {pending.correlation_id} initiated for order {order.order_number}")
        return pending

    # =====================================================
    # CONFIRM (idempotent)
    # =====================================================
    def confirm(self, correlation_id: str, result: PaymentResult) -> ConfirmOutcome:
        now = utcnow()
        pending = self.repo.get_pending(correlation_id)

        if pending is None:
            logger.warning(f"Confirmation for unknown checkout request {correlation_id}")
            return ConfirmOutcome.ORDER_NOT_FOUND

        order_id = pending.order_id

        if self.repo.consume(correlation_id, now) == 0:
            self.repo.rollback()
            return self._classify(correlation_id, now)

        order = self.orders.get_order(order_id)
        if order is None:
            self.repo.rollback()
            logger.error(f"Order {order_id} for checkout request {correlation_id} not found")
            return ConfirmOutcome.ORDER_NOT_FOUND

        applied = self.orders.compare_and_set_status(
            order.id,
            frozenset({OrderStatus.PENDING}),
            {
                "status": OrderStatus.PROCESSING.value,
                "paid_at": now,
                "payment_result": {**asdict(result), "update_time": now.isoformat()},
            },
        )

        # wpis zostaje skonsumowany w obu przypadkach
        self.repo.commit()

        if applied == 0:
            self.orders.refresh(order)
            logger.error(
                f"Payment {correlation_id} received for order {order.order_number} "
                f"in status {order.status}, manual refund required"
            )
            return ConfirmOutcome.REJECTED

        self.orders.refresh(order)
        logger.info(f"Order {order.order_number} marked as paid ({result.payment_method} {result.id})")

        notify_safely(
            self.notifier,
            EventKind.PAYMENT_RECEIVED,
            order,
            self._recipient(order.user_id),
            {"payment_id": result.id},
        )
        return ConfirmOutcome.APPLIED

    def _classify(self, correlation_id: str, now) -> ConfirmOutcome:
        pending = self.repo.get_pending(correlation_id)

        if pending is None:
            logger.warning(f"Checkout request {correlation_id} purged before confirmation")
            return ConfirmOutcome.ORDER_NOT_FOUND

        if pending.status == PendingPaymentStatus.CONSUMED:
            logger.info(f"Duplicate confirmation for {correlation_id} ignored")
            return ConfirmOutcome.ALREADY_APPLIED

        if pending.status == PendingPaymentStatus.EXPIRED or as_utc(pending.expires_at) <= now:
            logger.warning(f"Late confirmation for expired checkout request {correlation_id}")
            return ConfirmOutcome.EXPIRED

        logger.error(f"Confirmation for {correlation_id} in status {pending.status} rejected")
        return ConfirmOutcome.REJECTED

    def mark_failed(self, correlation_id: str, description: str) -> bool:
        rowcount = self.repo.mark_failed(correlation_id, utcnow(), description or "Payment failed")
        self.repo.commit()

        if rowcount:
            logger.warning(f"Payment {correlation_id} failed: {description}")
        return bool(rowcount)

    # =====================================================
    # STATUS POLL / CALLBACK
    # =====================================================
    def check_status(self, correlation_id: str, user_id: int) -> dict:
        pending = self.repo.get_pending(correlation_id)
        if pending is None:
            raise NotFound("Checkout request not found or expired")

        order = self.orders.get_order(pending.order_id)
        if order is None:
            raise NotFound("Order not found")

        if order.user_id != user_id:
            raise AuthorizationError("Not authorized to check this payment")

        if pending.status == PendingPaymentStatus.PENDING:
            if as_utc(pending.expires_at) <= utcnow():
                raise Expired("Checkout request expired")

            status = self.provider.query_status(correlation_id)

            if status.state == PaymentState.SUCCEEDED:
                outcome = self.confirm(
                    correlation_id,
                    PaymentResult(id=status.provider_txn_id or correlation_id),
                )
                if outcome is ConfirmOutcome.EXPIRED:
                    raise Expired("Checkout request expired")
                if outcome is ConfirmOutcome.ORDER_NOT_FOUND:
                    raise NotFound("Checkout request not found or expired")
            elif status.state == PaymentState.FAILED:
                self.mark_failed(correlation_id, status.description)
            else:
                return self._status_view(order, False, status.description or "Payment not completed")

            pending = self.repo.get_pending(correlation_id)
            self.orders.refresh(order)

        if pending.status == PendingPaymentStatus.EXPIRED:
            raise Expired("Checkout request expired")

        if pending.status == PendingPaymentStatus.FAILED:
            return self._status_view(order, False, pending.result_description or "Payment failed")

        if order.is_paid:
            return self._status_view(order, True, "Payment successful")

        return self._status_view(order, False, "Payment could not be applied to this order")

    @staticmethod
    def _status_view(order, success: bool, message: str) -> dict:
        return {
            "success": success,
            "message": message,
            "is_paid": order.is_paid,
            "status": order.status,
        }

    def handle_callback(self, payload: dict) -> dict:
        """
        Provider webhook. Always acknowledged with success so the provider
        stops retrying; any processing error stays in server logs.
        """
        try:
            correlation_id, status = parse_callback(payload)

            if status.state == PaymentState.SUCCEEDED:
                outcome = self.confirm(correlation_id, PaymentResult(id=status.provider_txn_id or correlation_id))
                logger.info(f"M-Pesa callback {correlation_id}: {outcome.value}")
            else:
                self.mark_failed(correlation_id, status.description)
        except Exception:
            self.db.rollback()
            logger.exception("Error processing M-Pesa callback")

        return dict(CALLBACK_ACK)

    # =====================================================
    # SWEEP
    # =====================================================
    def purge_expired(self, now=None) -> tuple[int, int]:
        """
        Mark pending entries past their TTL as expired (late confirmations then
        get EXPIRED) and delete resolved entries older than the retention window.
        """
        now = now or utcnow()
        expired = self.repo.expire_stale(now)
        deleted = self.repo.delete_resolved_before(now - timedelta(seconds=self.retention_seconds))
        self.repo.commit()

        logger.info(f"Pending payments sweep: {expired} expired, {deleted} deleted")
        return expired, deleted

    def _recipient(self, user_id: int) -> str | None:
        return self.users.get_email(user_id)
