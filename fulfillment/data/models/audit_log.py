from sqlalchemy import JSON, Column, DateTime, String

from fulfillment.data.database import Base, new_id
from fulfillment.utils.clock import utcnow


class AuditLogModel(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    actor_id = Column(String(36), nullable=True)
    action = Column(String(120), nullable=False)
    entity = Column(String(120), nullable=False)
    entity_id = Column(String(120), nullable=True)
    meta = Column(JSON, nullable=False, default=dict)
    # serialized UndoDescriptor, see fulfillment.domain.schemas
    undo = Column(JSON, nullable=True)
    undone_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
