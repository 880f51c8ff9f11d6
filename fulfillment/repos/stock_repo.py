# fulfillment/repos/stock_repo.py
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fulfillment.data.models.stock import StockItemModel, StockMovementModel
from fulfillment.utils.clock import utcnow


class StockRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_stock_item_by_variant(self, variant_id: str) -> StockItemModel | None:
        return self.db.execute(
            select(StockItemModel).where(StockItemModel.variant_id == variant_id)
        ).scalar_one_or_none()

    def order_item_movements(self, stock_item_id: str, tag: str):
        """Movements tagged `tag` or `tag:...`, oldest first."""
        return list(
            self.db.execute(
                select(StockMovementModel)
                .where(
                    StockMovementModel.stock_item_id == stock_item_id,
                    or_(
                        StockMovementModel.reason == tag,
                        StockMovementModel.reason.like(f"{tag}:%"),
                    ),
                )
                .order_by(StockMovementModel.created_at, StockMovementModel.id)
            ).scalars()
        )

    def insert_movement(self, stock_item_id: str, delta: int, reason: str) -> bool:
        """
        Append a movement inside a SAVEPOINT. Returns False when the
        (stock_item_id, reason) pair already exists; the surrounding
        transaction stays usable.
        """
        movement = StockMovementModel(stock_item_id=stock_item_id, delta=delta, reason=reason)
        try:
            with self.db.begin_nested():
                self.db.add(movement)
        except IntegrityError:
            return False
        return True

    def apply_delta(self, stock_item_id: str, delta: int) -> int:
        """
        Add ``delta`` to on_hand unless that would take it below zero.
        Returns the number of rows changed (0 or 1).
        """
        stmt = update(StockItemModel).where(StockItemModel.id == stock_item_id)
        if delta < 0:
            stmt = stmt.where(StockItemModel.on_hand >= -delta)
        result = self.db.execute(
            stmt.values(on_hand=StockItemModel.on_hand + delta, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def movement_sum(self, stock_item_id: str) -> int:
        total = self.db.execute(
            select(func.coalesce(func.sum(StockMovementModel.delta), 0)).where(
                StockMovementModel.stock_item_id == stock_item_id
            )
        ).scalar_one()
        return int(total)

    def list_movements(self, stock_item_id: str):
        return list(
            self.db.execute(
                select(StockMovementModel)
                .where(StockMovementModel.stock_item_id == stock_item_id)
                .order_by(StockMovementModel.created_at, StockMovementModel.id)
            ).scalars()
        )
