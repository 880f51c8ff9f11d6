# fulfillment/repos/audit_repo.py
from sqlalchemy.orm import Session

from fulfillment.data.models.audit_log import AuditLogModel


class AuditRepo:
    def __init__(self, db: Session):
        self.db = db

    def add(self, entry: AuditLogModel) -> AuditLogModel:
        self.db.add(entry)
        self.db.flush()
        return entry

    def get(self, audit_id: str) -> AuditLogModel | None:
        return self.db.get(AuditLogModel, audit_id)
