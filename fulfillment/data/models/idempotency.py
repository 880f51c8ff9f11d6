from sqlalchemy import JSON, Column, DateTime, String, UniqueConstraint

from fulfillment.data.database import Base, new_id
from fulfillment.utils.clock import utcnow


class IdempotencyRecordModel(Base):
    __tablename__ = "idempotency_records"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False)
    key = Column(String(120), nullable=False)
    request_hash = Column(String(64), nullable=False)
    response_body = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    __table_args__ = (UniqueConstraint("user_id", "key", name="u_idempotency_user_key"),)
