# fulfillment/repos/idempotency_repo.py
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fulfillment.data.models.idempotency import IdempotencyRecordModel


class IdempotencyRepo:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str, key: str) -> IdempotencyRecordModel | None:
        return self.db.execute(
            select(IdempotencyRecordModel).where(
                IdempotencyRecordModel.user_id == user_id,
                IdempotencyRecordModel.key == key,
            )
        ).scalar_one_or_none()

    def insert(self, record: IdempotencyRecordModel) -> bool:
        # False when another request already stored this (user_id, key)
        try:
            with self.db.begin_nested():
                self.db.add(record)
        except IntegrityError:
            return False
        return True

    def delete(self, record: IdempotencyRecordModel) -> None:
        self.db.delete(record)
        self.db.flush()

    def purge_expired(self, now: datetime) -> int:
        result = self.db.execute(
            delete(IdempotencyRecordModel)
            .where(IdempotencyRecordModel.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
