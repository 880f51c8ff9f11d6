# fulfillment/tasks/purge.py
from fulfillment.celery_worker import celery_app
from fulfillment.data.database import SessionLocal
from fulfillment.services.idempotency_service import IdempotencyGate
from fulfillment.services.lock_service import LockService
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="fulfillment.tasks.purge.purge_expired_idempotency_task")
def purge_expired_idempotency_task():
    logger.info("Purge expired idempotency records task started")

    db = SessionLocal()
    try:
        purged = IdempotencyGate(lock_service=LockService()).purge_expired(db)
        logger.info(f"Purge task finished, {purged} records removed")
        return purged
    finally:
        db.close()
