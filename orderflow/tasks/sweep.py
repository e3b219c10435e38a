# orderflow/tasks/sweep.py
from orderflow.celery_worker import celery_app
from orderflow.data.database import SessionLocal
from orderflow.services.payment_service import PaymentService
from orderflow.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="orderflow.tasks.sweep.purge_pending_payments_task")
def purge_pending_payments_task():
    logger.info("Pending payments sweep started")

    db = SessionLocal()
    try:
        expired, deleted = PaymentService(db).purge_expired()
        return {"expired": expired, "deleted": deleted}
    finally:
        db.close()
