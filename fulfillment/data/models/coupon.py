from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, Numeric, String

from fulfillment.data.database import Base, new_id
from fulfillment.utils.clock import utcnow


class CouponModel(Base):
    __tablename__ = "coupons"

    id = Column(String(36), primary_key=True, default=new_id)
    # stored normalized: trimmed, upper-case
    code = Column(String(50), nullable=False, unique=True)
    description = Column(String(255), nullable=True)
    type = Column(String(20), nullable=False)  # PERCENT | FIXED
    value = Column(Numeric(12, 2), nullable=False)
    min_subtotal = Column(Numeric(12, 2), nullable=True)
    max_redemptions = Column(Integer, nullable=True)
    redemption_count = Column(Integer, nullable=False, default=0)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(
            "max_redemptions IS NULL OR redemption_count <= max_redemptions",
            name="ck_coupon_redemption_limit",
        ),
    )
