"""
Redis lock for periodic tasks that must not overlap across workers.

SET NX EX takes the lock; the stored value is a per-holder token so a run
that outlived its TTL cannot release a lock already taken by the next run.
"""
import uuid

import redis

from app.core.config import settings

# Delete only if the key still holds our token.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class TaskLock:
    def __init__(self, name: str, client: redis.Redis | None = None, ttl_seconds: int | None = None) -> None:
        self.client = client or redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self.key = f"lock:{name}"
        self.ttl = ttl_seconds if ttl_seconds is not None else settings.membership_sweep_lock_ttl
        self._token: str | None = None

    def acquire(self) -> bool:
        token = uuid.uuid4().hex
        if self.client.set(self.key, token, nx=True, ex=self.ttl):
            self._token = token
            return True
        return False

    def release(self) -> None:
        if self._token is None:
            return
        self.client.eval(_RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
