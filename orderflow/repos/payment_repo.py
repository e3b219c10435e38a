# orderflow/repos/payment_repo.py
from datetime import datetime

from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from orderflow.data.models.pending_payment import PendingPaymentModel, PendingPaymentStatus


class PaymentRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_pending(self, pending: PendingPaymentModel) -> PendingPaymentModel:
        self.db.add(pending)
        self.db.commit()
        self.db.refresh(pending)
        return pending

    def get_pending(self, correlation_id: str) -> PendingPaymentModel | None:
        return self.db.get(PendingPaymentModel, correlation_id)

    def _resolve(self, correlation_id: str, now: datetime, values: dict) -> int:
        # tylko wpis w stanie pending i nieprzeterminowany moze zostac rozwiazany
        result = self.db.execute(
            update(PendingPaymentModel)
            .where(
                PendingPaymentModel.correlation_id == correlation_id,
                PendingPaymentModel.status == PendingPaymentStatus.PENDING,
                PendingPaymentModel.expires_at > now,
            )
            .values(resolved_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def consume(self, correlation_id: str, now: datetime) -> int:
        return self._resolve(correlation_id, now, {"status": PendingPaymentStatus.CONSUMED})

    def mark_failed(self, correlation_id: str, now: datetime, description: str) -> int:
        return self._resolve(
            correlation_id,
            now,
            {"status": PendingPaymentStatus.FAILED, "result_description": description[:255]},
        )

    def expire_stale(self, now: datetime) -> int:
        result = self.db.execute(
            update(PendingPaymentModel)
            .where(
                PendingPaymentModel.status == PendingPaymentStatus.PENDING,
                PendingPaymentModel.expires_at <= now,
            )
            .values(status=PendingPaymentStatus.EXPIRED, resolved_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def delete_resolved_before(self, cutoff: datetime) -> int:
        result = self.db.execute(
            delete(PendingPaymentModel)
            .where(
                PendingPaymentModel.status != PendingPaymentStatus.PENDING,
                PendingPaymentModel.resolved_at < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
