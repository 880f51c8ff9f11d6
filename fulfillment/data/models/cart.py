#fulfillment/data/models/cart.py
from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from fulfillment.data.database import Base, new_id
from fulfillment.utils.clock import utcnow


class CartModel(Base):
    __tablename__ = "carts"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, unique=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    items = relationship(
        "CartItemModel",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItemModel.created_at",
    )
