import redis

from fulfillment.utils.logging import get_logger
from fulfillment.utils.retry import redis_retry
from fulfillment.utils.settings import REDIS_URL

logger = get_logger(__name__)

# compare-and-delete as one Lua script: nobody can slip in between GET and DEL
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


def idempotency_lock_key(user_id: str, key: str) -> str:
    return f"idempotency:{user_id}:{key}:lock"


class LockService:
    """
    Short-lived Redis locks marking a request as in flight.
    SET NX EX takes the lock, the Lua script releases it only for the owner.
    """

    def __init__(self, url: str | None = None):
        self.redis = redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @redis_retry()
    def acquire(self, key: str, token: str, ttl: int) -> bool:
        logger.info(f"Acquire lock {key}")
        # expires on its own after ttl, a crashed request cannot hold it forever
        return bool(self.redis.set(name=key, value=token, nx=True, ex=ttl))

    @redis_retry()
    def release(self, key: str, token: str) -> bool:
        logger.info(f"Release lock {key}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, token)
        return bool(res)
