from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from fulfillment.data.database import Base, new_id
from fulfillment.utils.clock import utcnow


class StockItemModel(Base):
    __tablename__ = "stock_items"

    id = Column(String(36), primary_key=True, default=new_id)
    variant_id = Column(String(36), ForeignKey("product_variants.id"), nullable=False, unique=True)
    # materialized sum of movements.delta
    on_hand = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    variant = relationship("ProductVariantModel", back_populates="stock_item")
    movements = relationship("StockMovementModel", back_populates="stock_item", order_by="StockMovementModel.created_at")

    __table_args__ = (CheckConstraint("on_hand >= 0", name="ck_stock_on_hand_non_negative"),)


class StockMovementModel(Base):
    """Append-only ledger row."""

    __tablename__ = "stock_movements"

    id = Column(String(36), primary_key=True, default=new_id)
    stock_item_id = Column(String(36), ForeignKey("stock_items.id"), nullable=False, index=True)
    delta = Column(Integer, nullable=False)
    reason = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    stock_item = relationship("StockItemModel", back_populates="movements")

    __table_args__ = (UniqueConstraint("stock_item_id", "reason", name="u_stock_movement_reason"),)
