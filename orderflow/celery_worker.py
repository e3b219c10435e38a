# orderflow/celery_worker.py
from celery import Celery

from orderflow.utils.settings import (
    CELERY_BROKER_URL,
    CELERY_RESULT_BACKEND,
    PAYMENT_SWEEP_INTERVAL_SECONDS,
)

celery_app = Celery(
    "orderflow",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# explicite importuj taski, zeby Celery je zarejestrowal
celery_app.conf.imports = (
    "orderflow.tasks.sweep",
    "orderflow.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "purge-pending-payments": {
        "task": "orderflow.tasks.sweep.purge_pending_payments_task",
        "schedule": PAYMENT_SWEEP_INTERVAL_SECONDS,
    },
}

celery_app.conf.timezone = "UTC"
