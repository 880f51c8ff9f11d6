# fulfillment/services/undo_service.py
from sqlalchemy.orm import Session

from fulfillment.data.database import transactional
from fulfillment.data.models.audit_log import AuditLogModel
from fulfillment.domain.errors import NotFoundError, UndoError
from fulfillment.domain.schemas import (
    OrderStatusUndo,
    PaymentStatusUndo,
    StockAdjustmentUndo,
    undo_adapter,
)
from fulfillment.repos.audit_repo import AuditRepo
from fulfillment.services.audit_service import AuditLogger
from fulfillment.services.order_service import OrderLifecycleController
from fulfillment.services.stock_service import StockLedger
from fulfillment.utils.clock import utcnow
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)


class AuditService:
    """
    Reverts an audited mutation from the undo descriptor stored with it.
    Order state is put back as recorded, with stock following it; stock
    adjustments are reverted with a counter-adjustment.
    """

    def __init__(
        self,
        lifecycle: OrderLifecycleController | None = None,
        ledger: StockLedger | None = None,
        audit: AuditLogger | None = None,
    ):
        self.audit = audit or AuditLogger()
        self.ledger = ledger or StockLedger(audit=self.audit)
        self.lifecycle = lifecycle or OrderLifecycleController(ledger=self.ledger, audit=self.audit)

    @transactional()
    def undo(self, db: Session, audit_id: str, actor_id: str | None = None) -> AuditLogModel:
        entry = AuditRepo(db).get(audit_id)
        if entry is None:
            raise NotFoundError("Audit entry not found")
        if entry.undone_at is not None:
            raise UndoError("Audit entry was already undone", code="undo_already_done", status_code=409)
        if not entry.undo:
            raise UndoError(f"Action {entry.action} cannot be undone")

        descriptor = undo_adapter.validate_python(entry.undo)

        if isinstance(descriptor, OrderStatusUndo):
            order = self.lifecycle.get_order(db, descriptor.order_id)
            self._ensure_current(entry, order.status, descriptor.status)
            self.lifecycle.restore_state(
                db,
                order.id,
                descriptor.previous_status,
                descriptor.previous_payment_status,
                actor_id=actor_id,
            )
        elif isinstance(descriptor, PaymentStatusUndo):
            order = self.lifecycle.get_order(db, descriptor.order_id)
            self._ensure_current(entry, order.payment_status, descriptor.payment_status)
            self.lifecycle.restore_state(
                db,
                order.id,
                order.status,
                descriptor.previous_payment_status,
                actor_id=actor_id,
            )
        elif isinstance(descriptor, StockAdjustmentUndo):
            self.ledger.adjust(db, descriptor.variant_id, -descriptor.delta, f"UNDO:{entry.id}", actor_id=actor_id)

        entry.undone_at = utcnow()
        db.flush()

        self.audit.record(
            db,
            actor_id,
            "audit_undo",
            entry.entity,
            entry.entity_id,
            meta={"audit_id": entry.id, "action": entry.action, "undo": entry.undo},
        )
        logger.info(f"Audit entry {entry.id} ({entry.action}) undone by {actor_id}")
        return entry

    def _ensure_current(self, entry: AuditLogModel, current: str, recorded) -> None:
        # a later change sits on top of this one, undo that first
        if current != recorded.value:
            raise UndoError(
                f"Order moved on since audit entry {entry.id}, it can no longer be undone",
                code="undo_stale",
                status_code=409,
            )
