from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import composite, relationship

from fulfillment.data.database import Base, new_id
from fulfillment.domain.pricing import Pricing
from fulfillment.utils.clock import utcnow


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(String(36), primary_key=True, default=new_id)
    cart_id = Column(String(36), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), nullable=False)
    variant_id = Column(String(36), nullable=True)

    quantity = Column(Integer, nullable=False)

    # snapshot taken when the item is added, later catalog edits do not leak in
    price_snapshot = Column(Numeric(12, 2), nullable=False)
    cost_snapshot = Column(Numeric(12, 2), nullable=True)
    name_snapshot = Column(String(200), nullable=False)
    sku_snapshot = Column(String(100), nullable=False)
    attributes_snapshot = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    pricing = composite(Pricing, price_snapshot, cost_snapshot)

    cart = relationship("CartModel", back_populates="items")
