# fulfillment/celery_worker.py
from celery import Celery

from fulfillment.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "fulfillment",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# tasks live outside this module, import them explicitly so the worker registers them
celery_app.conf.imports = (
    "fulfillment.tasks.purge",
    "fulfillment.services.audit_service",
)

celery_app.conf.beat_schedule = {
    "purge-idempotency-records-hourly": {
        "task": "fulfillment.tasks.purge.purge_expired_idempotency_task",
        "schedule": 60.0 * 60,
    },
}

celery_app.conf.timezone = "UTC"
