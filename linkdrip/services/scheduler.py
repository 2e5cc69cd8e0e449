"""Redis-backed single-flight guard for the discovery pipeline.

Keys:
- pipeline:lock - holder token of the running pipeline, expires after the
  lock TTL so a crashed worker cannot block runs forever
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import uuid4

import redis

from linkdrip.config import get_settings
from linkdrip.exceptions import ScheduleConflict

logger = logging.getLogger(__name__)

PIPELINE_LOCK_KEY = "pipeline:lock"

# Delete the key only if it still holds our token
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class PipelineLock:
    """Atomic SET NX EX lock with token-checked release."""

    def __init__(self, redis_client: redis.Redis, ttl_seconds: int, key: str = PIPELINE_LOCK_KEY):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.key = key

    def acquire(self) -> str | None:
        """Take the lock. Returns the holder token, or None if already held."""
        token = uuid4().hex
        if self.redis.set(self.key, token, nx=True, ex=self.ttl_seconds):
            logger.debug(f"Acquired {self.key}")
            return token
        return None

    def release(self, token: str) -> bool:
        """Release the lock if ``token`` still holds it."""
        released = bool(self.redis.eval(RELEASE_SCRIPT, 1, self.key, token))
        if not released:
            logger.warning(f"{self.key} was no longer held by this run (expired?)")
        return released

    def is_locked(self) -> bool:
        return self.redis.get(self.key) is not None

    @contextmanager
    def hold(self) -> Iterator[str]:
        """Hold the lock for the duration of the block.

        Raises:
            ScheduleConflict: Another run holds the lock.
        """
        token = self.acquire()
        if token is None:
            raise ScheduleConflict("Discovery pipeline is already running")
        try:
            yield token
        finally:
            self.release(token)


# Singleton instance
_pipeline_lock: PipelineLock | None = None


def get_pipeline_lock() -> PipelineLock:
    """Get the pipeline lock singleton."""
    global _pipeline_lock
    if _pipeline_lock is None:
        settings = get_settings()
        _pipeline_lock = PipelineLock(
            redis.from_url(settings.redis_url, decode_responses=True),
            settings.pipeline_lock_ttl_seconds,
        )
    return _pipeline_lock
