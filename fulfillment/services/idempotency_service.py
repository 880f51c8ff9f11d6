# fulfillment/services/idempotency_service.py
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

import redis
from pydantic_core import to_jsonable_python
from sqlalchemy.orm import Session

from fulfillment.data.database import new_id, transactional
from fulfillment.data.models.idempotency import IdempotencyRecordModel
from fulfillment.domain.errors import ConflictError, ValidationError
from fulfillment.repos.idempotency_repo import IdempotencyRepo
from fulfillment.services.lock_service import LockService, idempotency_lock_key
from fulfillment.utils.clock import as_utc, utcnow
from fulfillment.utils.logging import get_logger
from fulfillment.utils.settings import IDEMPOTENCY_LOCK_TTL_SECONDS, IDEMPOTENCY_TTL_SECONDS

logger = get_logger(__name__)

MAX_KEY_LENGTH = 120


def request_hash(body: Any) -> str:
    canonical = json.dumps(
        to_jsonable_python(body if body is not None else {}),
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class IdempotencyCheck:
    hit: bool
    stored_response: Any = None
    request_hash: str | None = None


@dataclass(frozen=True)
class IdempotentResponse:
    replayed: bool
    response: Any


class IdempotencyGate:
    """
    Deduplicates client retries of a mutating operation.

    A (user_id, key) pair is bound to the hash of the first request body that
    used it. Replays with the same body get the stored response back without
    re-running anything; a different body under the same key is a conflict.
    """

    def __init__(
        self,
        lock_service: LockService | None = None,
        ttl_seconds: int = IDEMPOTENCY_TTL_SECONDS,
        lock_ttl_seconds: int = IDEMPOTENCY_LOCK_TTL_SECONDS,
    ):
        self.lock_service = lock_service if lock_service is not None else LockService()
        self.ttl_seconds = ttl_seconds
        self.lock_ttl_seconds = lock_ttl_seconds

    def check(self, db: Session, user_id: str, key: str, body: Any, now: datetime | None = None) -> IdempotencyCheck:
        key = self._validate_key(key)
        digest = request_hash(body)
        record = IdempotencyRepo(db).get(user_id, key)

        if record is None or self._expired(record, now):
            return IdempotencyCheck(hit=False, request_hash=digest)

        if record.request_hash != digest:
            raise ConflictError(
                "Idempotency key was already used with a different payload",
                code="idempotency_conflict",
            )

        logger.info(f"Idempotency hit for user {user_id} key {key}")
        return IdempotencyCheck(hit=True, stored_response=record.response_body, request_hash=digest)

    @transactional()
    def commit(
        self,
        db: Session,
        user_id: str,
        key: str,
        digest: str,
        response_body: Any,
        now: datetime | None = None,
    ) -> IdempotencyRecordModel:
        key = self._validate_key(key)
        now = now or utcnow()
        repo = IdempotencyRepo(db)

        existing = repo.get(user_id, key)
        if existing is not None:
            if not self._expired(existing, now):
                raise ConflictError("Idempotency key already committed", code="idempotency_conflict")
            repo.delete(existing)

        record = IdempotencyRecordModel(
            user_id=user_id,
            key=key,
            request_hash=digest,
            response_body=to_jsonable_python(response_body),
            created_at=now,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
        )
        # a concurrent request with the same key won the insert
        if not repo.insert(record):
            raise ConflictError("Idempotency key already committed", code="idempotency_conflict")

        logger.info(f"Idempotency record stored for user {user_id} key {key}")
        return record

    def run(self, db: Session, user_id: str, key: str, body: Any, operation: Callable[[Session], Any]) -> IdempotentResponse:
        """
        check -> operation -> commit in one unit of work, guarded by a short
        in-flight lock so a retry arriving mid-request does not run twice.
        """
        key = self._validate_key(key)
        lock_key = idempotency_lock_key(user_id, key)
        token = new_id()

        if not self.lock_service.acquire(lock_key, token, self.lock_ttl_seconds):
            raise ConflictError("A request with this idempotency key is in progress", code="idempotency_in_progress")

        try:
            return self._run(db, user_id, key, body, operation)
        finally:
            try:
                self.lock_service.release(lock_key, token)
            except redis.RedisError as e:
                logger.warning(f"Failed to release idempotency lock {lock_key}: {e}")

    @transactional()
    def _run(self, db: Session, user_id: str, key: str, body: Any, operation) -> IdempotentResponse:
        checked = self.check(db, user_id, key, body)
        if checked.hit:
            return IdempotentResponse(replayed=True, response=checked.stored_response)

        response = to_jsonable_python(operation(db))
        self.commit(db, user_id, key, checked.request_hash, response)
        return IdempotentResponse(replayed=False, response=response)

    @transactional(isolation_level=None)
    def purge_expired(self, db: Session, now: datetime | None = None) -> int:
        purged = IdempotencyRepo(db).purge_expired(now or utcnow())
        logger.info(f"Purged {purged} expired idempotency records")
        return purged

    def _expired(self, record: IdempotencyRecordModel, now: datetime | None) -> bool:
        return as_utc(record.expires_at) <= (now or utcnow())

    def _validate_key(self, key: str | None) -> str:
        key = (key or "").strip()
        if not key:
            raise ValidationError("Idempotency-Key header is required", code="missing_idempotency_key")
        if len(key) > MAX_KEY_LENGTH:
            raise ValidationError(f"Idempotency-Key longer than {MAX_KEY_LENGTH} characters")
        return key
