# fulfillment/services/audit_service.py
from typing import Any, Callable, Dict

from sqlalchemy import event
from sqlalchemy.orm import Session

from fulfillment.celery_worker import celery_app
from fulfillment.data.database import SessionLocal
from fulfillment.data.models.audit_log import AuditLogModel
from fulfillment.repos.audit_repo import AuditRepo
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)

_PENDING_AUDIT = "pending_audit_entries"


class AuditLogger:
    """
    Fire-and-forget audit trail.

    Entries recorded while the session is inside a transaction are held on the
    session and only dispatched once it commits, a rollback drops them. A
    failure to dispatch is logged and never reaches the caller.
    """

    def __init__(self, dispatch: Callable[[Dict[str, Any]], Any] | None = None):
        self._dispatch = dispatch

    def record(
        self,
        db: Session | None,
        actor_id: str | None,
        action: str,
        entity: str,
        entity_id: str | None,
        meta: Dict[str, Any] | None = None,
        undo=None,
    ) -> None:
        entry = {
            "actor_id": actor_id,
            "action": action,
            "entity": entity,
            "entity_id": entity_id,
            "meta": meta or {},
            "undo": undo.model_dump(mode="json") if undo is not None else None,
        }
        if db is not None and db.in_transaction():
            db.info.setdefault(_PENDING_AUDIT, []).append((self, entry))
            return
        self.send(entry)

    def send(self, entry: Dict[str, Any]) -> None:
        dispatch = self._dispatch or write_audit_log_task.delay
        try:
            dispatch(entry)
        except Exception as e:
            logger.warning(f"Audit log dispatch failed for {entry['action']} {entry['entity']}:{entry['entity_id']}: {e}")


@event.listens_for(Session, "after_commit")
def _dispatch_pending_audit(session):
    for audit_logger, entry in session.info.pop(_PENDING_AUDIT, []):
        audit_logger.send(entry)


@event.listens_for(Session, "after_soft_rollback")
def _drop_pending_audit(session, previous_transaction):
    if previous_transaction.nested:
        return
    dropped = session.info.pop(_PENDING_AUDIT, [])
    if dropped:
        logger.info(f"Dropped {len(dropped)} audit entries of a rolled back transaction")


@celery_app.task(name="fulfillment.services.audit_service.write_audit_log_task")
def write_audit_log_task(entry: Dict[str, Any]):
    db = SessionLocal()
    try:
        AuditRepo(db).add(AuditLogModel(**entry))
        db.commit()
        logger.info(f"[AUDIT] {entry['action']} {entry['entity']}:{entry['entity_id']} by {entry['actor_id']}")
    finally:
        db.close()
