"""Single-run lock for periodic tasks.

A Redis key set with NX and a TTL marks a run in progress. The holder's
random token is checked on release, so a run whose lock already expired
cannot delete a lock taken by the next run.
"""

import logging
import uuid
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Compare-and-delete
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class RunLock:
    """Manage a single-run lock in Redis."""

    def __init__(self, redis: Any, name: str, ttl_seconds: int = 3600) -> None:
        self.redis = redis
        self.key = f"lock:{name}"
        self.ttl_seconds = ttl_seconds
        self.token: Optional[str] = None

    def acquire_lock(self) -> bool:
        """Attempt to acquire the lock; False if another run holds it."""
        token = uuid.uuid4().hex
        if self.redis.set(self.key, token, nx=True, ex=self.ttl_seconds):
            self.token = token
            return True
        return False

    def release_lock(self) -> None:
        """Release the lock if this instance still holds it."""
        if self.token is None:
            return
        released = self.redis.eval(RELEASE_SCRIPT, 1, self.key, self.token)
        if not released:
            logger.warning(f"Lock {self.key} expired before release")
        self.token = None
