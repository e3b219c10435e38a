# orderflow/data/models/pending_payment.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric

from orderflow.data.database import Base


class PendingPaymentStatus:
    PENDING = "pending"
    CONSUMED = "consumed"
    FAILED = "failed"
    EXPIRED = "expired"


class PendingPaymentModel(Base):
    __tablename__ = "pending_payments"

    # CheckoutRequestID od dostawcy
    correlation_id = Column(String(100), primary_key=True)
    merchant_request_id = Column(String(100), nullable=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    payer_handle = Column(String(32), nullable=False)

    status = Column(String(20), nullable=False, default=PendingPaymentStatus.PENDING, index=True)
    result_description = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
