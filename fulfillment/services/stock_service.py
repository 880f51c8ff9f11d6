# fulfillment/services/stock_service.py
from sqlalchemy.orm import Session

from fulfillment.data.database import new_id, transactional
from fulfillment.data.models.stock import StockItemModel
from fulfillment.domain.enums import OrderStatus
from fulfillment.domain.errors import (
    InsufficientStockError,
    NotFoundError,
    StockItemMissingError,
    ValidationError,
)
from fulfillment.domain.schemas import StockAdjustmentUndo
from fulfillment.repos.order_repo import OrderRepo
from fulfillment.repos.stock_repo import StockRepo
from fulfillment.services.audit_service import AuditLogger
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)

STOCK_REASON_PREFIX = "ORDER"
RESTORE_SUFFIX = "RESTORE"
ADJUST_PREFIX = "ADJUST"


def deduction_reason(order_id: str, order_item_id: str, cycle: int = 0) -> str:
    # cycle n > 0 tags the deduction taken again after n restorations
    tag = f"{STOCK_REASON_PREFIX}:{order_id}:{order_item_id}"
    return f"{tag}:{cycle}" if cycle else tag


def restoration_reason(order_id: str, order_item_id: str, cycle: int = 0) -> str:
    return f"{deduction_reason(order_id, order_item_id, cycle)}:{RESTORE_SUFFIX}"


def held_cycle(movements) -> tuple:
    """
    (held, deductions) for one order item's movements: whether the item's
    stock is currently taken, and how many deductions were ever recorded.
    """
    held = sum(m.delta for m in movements) < 0
    return held, sum(1 for m in movements if m.delta < 0)


class StockLedger:
    """
    Append-only inventory ledger.

    Order deductions and restorations are tagged with a reason derived from
    (order_id, order_item_id) and the item's deduction cycle; the unique
    (stock_item_id, reason) constraint makes each of them happen at most once
    no matter how often, or from how many paths, the ensure_* methods are
    called.
    """

    def __init__(self, audit: AuditLogger | None = None):
        self.audit = audit or AuditLogger()

    @transactional()
    def ensure_deducted(self, db: Session, order_id: str) -> int:
        """
        Take stock for every item not currently deducted. Stock handed back
        by a cancellation stays handed back, a late payment does not take it
        again.
        """
        order = OrderRepo(db).get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")

        stock = StockRepo(db)
        applied = 0

        for item in order.items:
            if not item.variant_id or item.quantity <= 0:
                continue

            stock_item = stock.get_stock_item_by_variant(item.variant_id)
            if not stock_item:
                raise StockItemMissingError(f"No stock item for variant {item.variant_id}")

            held, cycle = held_cycle(stock.order_item_movements(stock_item.id, deduction_reason(order.id, item.id)))
            if held or (cycle and order.status == OrderStatus.CANCELED.value):
                continue
            reason = deduction_reason(order.id, item.id, cycle)

            if stock_item.on_hand < item.quantity:
                raise InsufficientStockError(
                    f"Insufficient stock for {item.sku_snapshot}: "
                    f"{stock_item.on_hand} on hand, {item.quantity} ordered"
                )

            if not stock.insert_movement(stock_item.id, -item.quantity, reason):
                # a concurrent caller got there first
                logger.info(f"Deduction {reason} already recorded")
                continue

            if stock.apply_delta(stock_item.id, -item.quantity) == 0:
                raise InsufficientStockError(f"Insufficient stock for {item.sku_snapshot}")

            db.expire(stock_item, ["on_hand", "updated_at"])
            applied += 1

        logger.info(f"Order {order.id}: {applied} stock deductions applied")
        return applied

    @transactional()
    def ensure_restored(self, db: Session, order_id: str) -> int:
        order = OrderRepo(db).get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")

        stock = StockRepo(db)
        applied = 0

        for item in order.items:
            if not item.variant_id or item.quantity <= 0:
                continue

            stock_item = stock.get_stock_item_by_variant(item.variant_id)
            if not stock_item:
                continue

            held, cycle = held_cycle(stock.order_item_movements(stock_item.id, deduction_reason(order.id, item.id)))
            # nothing taken, nothing to give back
            if not held:
                continue
            reason = restoration_reason(order.id, item.id, cycle - 1)

            if not stock.insert_movement(stock_item.id, item.quantity, reason):
                logger.info(f"Restoration {reason} already recorded")
                continue

            stock.apply_delta(stock_item.id, item.quantity)
            db.expire(stock_item, ["on_hand", "updated_at"])
            applied += 1

        logger.info(f"Order {order.id}: {applied} stock restorations applied")
        return applied

    @transactional()
    def adjust(self, db: Session, variant_id: str, delta: int, reason: str, actor_id: str | None = None) -> StockItemModel:
        """Manual restock or correction; on_hand may never drop below zero."""
        if delta == 0:
            raise ValidationError("Stock adjustment delta must not be zero")

        stock = StockRepo(db)
        stock_item = stock.get_stock_item_by_variant(variant_id)
        if not stock_item:
            raise NotFoundError("Stock item not found")

        tag = f"{ADJUST_PREFIX}:{new_id()}:{reason}"[:255]
        stock.insert_movement(stock_item.id, delta, tag)
        if stock.apply_delta(stock_item.id, delta) == 0:
            raise InsufficientStockError(
                f"Adjustment of {delta} would take variant {variant_id} below zero"
            )
        db.expire(stock_item, ["on_hand", "updated_at"])

        self.audit.record(
            db,
            actor_id,
            "stock_adjust",
            "stock_item",
            stock_item.id,
            meta={"variant_id": variant_id, "delta": delta, "reason": reason},
            undo=StockAdjustmentUndo(variant_id=variant_id, delta=delta),
        )
        logger.info(f"Stock for variant {variant_id} adjusted by {delta} ({reason})")
        return stock_item

    def on_hand_for(self, db: Session, variant_id: str) -> int:
        stock_item = StockRepo(db).get_stock_item_by_variant(variant_id)
        if not stock_item:
            raise NotFoundError("Stock item not found")
        return stock_item.on_hand

    def is_consistent(self, db: Session, stock_item: StockItemModel) -> bool:
        """on_hand must equal the sum of the item's movements."""
        db.refresh(stock_item)
        return stock_item.on_hand == StockRepo(db).movement_sum(stock_item.id)
