# fulfillment/api/routers/backoffice.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fulfillment.api.deps import get_audit_service, get_lifecycle, get_stock_ledger
from fulfillment.data.database import get_db
from fulfillment.domain.schemas import (
    AuditLogOut,
    OrderOut,
    OrderStatusUpdate,
    PaymentStatusUpdate,
    StockAdjustIn,
    StockItemOut,
)
from fulfillment.services.order_service import OrderLifecycleController
from fulfillment.services.stock_service import StockLedger
from fulfillment.services.undo_service import AuditService

router = APIRouter(prefix="/backoffice", tags=["backoffice"])


@router.patch("/orders/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    actor_id: str | None = Query(None),
    db: Session = Depends(get_db),
    lifecycle: OrderLifecycleController = Depends(get_lifecycle),
):
    return lifecycle.update_order_status(db, order_id, payload.status, actor_id=actor_id)


@router.patch("/orders/{order_id}/payment-status", response_model=OrderOut)
def update_payment_status(
    order_id: str,
    payload: PaymentStatusUpdate,
    actor_id: str | None = Query(None),
    db: Session = Depends(get_db),
    lifecycle: OrderLifecycleController = Depends(get_lifecycle),
):
    return lifecycle.update_payment_status(db, order_id, payload.payment_status, actor_id=actor_id)


@router.post("/stock/{variant_id}/adjustments", response_model=StockItemOut)
def adjust_stock(
    variant_id: str,
    payload: StockAdjustIn,
    actor_id: str | None = Query(None),
    db: Session = Depends(get_db),
    ledger: StockLedger = Depends(get_stock_ledger),
):
    stock_item = ledger.adjust(db, variant_id, payload.delta, payload.reason, actor_id=actor_id)
    db.refresh(stock_item)
    return stock_item


@router.post("/audit/{audit_id}/undo", response_model=AuditLogOut)
def undo_audit_entry(
    audit_id: str,
    actor_id: str | None = Query(None),
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service),
):
    return audit.undo(db, audit_id, actor_id=actor_id)
