from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String, event, inspect
from sqlalchemy.orm import composite, relationship

from fulfillment.data.database import Base, new_id
from fulfillment.domain.enums import OrderStatus, PaymentStatus
from fulfillment.domain.pricing import Pricing
from fulfillment.utils.clock import utcnow
from fulfillment.utils.settings import DEFAULT_CURRENCY


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)

    total = Column(Numeric(12, 2), nullable=False)
    discount_total = Column(Numeric(12, 2), nullable=False, default=0)
    coupon_id = Column(String(36), ForeignKey("coupons.id"), nullable=True)
    coupon_code = Column(String(50), nullable=True)
    currency = Column(String(3), nullable=False, default=DEFAULT_CURRENCY)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    items = relationship("OrderItemModel", back_populates="order", order_by="OrderItemModel.position")
    payment = relationship("PaymentModel", back_populates="order", uselist=False)


class OrderItemModel(Base):
    """Frozen copy of a cart item, written once at checkout."""

    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    product_id = Column(String(36), nullable=True)
    variant_id = Column(String(36), nullable=True)
    quantity = Column(Integer, nullable=False)

    price_snapshot = Column(Numeric(12, 2), nullable=False)
    cost_snapshot = Column(Numeric(12, 2), nullable=True)
    name_snapshot = Column(String(200), nullable=False)
    sku_snapshot = Column(String(100), nullable=False)
    attributes_snapshot = Column(JSON, nullable=False, default=dict)

    pricing = composite(Pricing, price_snapshot, cost_snapshot)

    order = relationship("OrderModel", back_populates="items")


_MUTABLE_ORDER_COLUMNS = {"status", "payment_status", "updated_at"}


def _changed_columns(target) -> set:
    state = inspect(target)
    return {
        attr.key
        for attr in state.mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    }


@event.listens_for(OrderModel, "before_update")
def _guard_order_update(mapper, connection, target):
    frozen = _changed_columns(target) - _MUTABLE_ORDER_COLUMNS
    if frozen:
        raise ValueError(f"Order {target.id} is immutable, cannot change: {sorted(frozen)}")


@event.listens_for(OrderItemModel, "before_update")
def _guard_order_item_update(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        raise ValueError(f"Order item {target.id} is immutable, cannot change: {sorted(changed)}")
