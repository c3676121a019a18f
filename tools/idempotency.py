import time
import redis
from typing import Optional
from loguru import logger

class Idem:
    """Redis-backed marker that suppresses re-delivered SalesPro webhooks."""

    def __init__(self, redis_url: Optional[str] = None, ttl: int = 86400):
        """
        Connect to Redis, falling back to an in-process set.

        Args:
            redis_url: Redis connection URL; None keeps markers in memory
            ttl: Marker lifetime in seconds
        """
        self.ttl = ttl
        self.r = None
        self._memory_keys = set()

        if not redis_url:
            logger.info("No Redis URL provided, idempotency markers kept in memory")
            return

        try:
            self.r = redis.from_url(redis_url)
            self.r.ping()
            logger.info("Redis connection established successfully")
        except redis.RedisError as e:
            logger.error(f"Redis connection failed, using in-memory markers: {e}")
            self.r = None

    def check_and_set(self, key: str) -> bool:
        """
        Check if key exists and set it if it doesn't.

        Args:
            key: Delivery key, e.g. salespro:estimate:E1

        Returns:
            True if key was set (first delivery), False if already seen
        """
        if not key:
            logger.warning("Empty key provided to idempotency check")
            return False

        if self.r is None:
            if key in self._memory_keys:
                return False
            self._memory_keys.add(key)
            return True

        try:
            result = self.r.set(
                name=f"idem:{key}",
                value=int(time.time()),
                ex=self.ttl,
                nx=True
            )
            return result is True
        except redis.RedisError as e:
            logger.error(f"Idempotency check failed: {e}")
            # Fail open so deliveries are not dropped while Redis is down
            return True

    def clear_key(self, key: str) -> bool:
        """Release a key so the same delivery can be retried."""
        if self.r is None:
            self._memory_keys.discard(key)
            return True

        try:
            return bool(self.r.delete(f"idem:{key}"))
        except redis.RedisError as e:
            logger.error(f"Failed to clear key: {e}")
            return False

    @property
    def backend(self) -> str:
        return "redis" if self.r is not None else "memory"
