"""
Redis caching layer for the Tracking service.

Every record is a field of one hash (``logistics_cache`` by default), keyed
by tracking number and holding the record's JSON encoding.
"""

from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.logging import get_logger
from shared.errors import TrackingTransientError


TTL_SCOPE_NAMESPACE = "namespace"
TTL_SCOPE_ENTRY = "entry"

CONNECTIVITY_ERRORS = (RedisError, OSError)


class TrackingCache:
    """Hash-backed cache store for serialized tracking records."""

    def __init__(
        self,
        redis_url: str,
        *,
        namespace: str = "logistics_cache",
        ttl_seconds: int = 7200,
        ttl_scope: str = TTL_SCOPE_NAMESPACE,
        socket_timeout: float = 5.0,
        client: Optional[redis.Redis] = None,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if ttl_scope not in (TTL_SCOPE_NAMESPACE, TTL_SCOPE_ENTRY):
            raise ValueError(f"Unknown TTL scope: {ttl_scope}")

        self.redis_url = redis_url
        self.namespace = namespace
        self.ttl_seconds = ttl_seconds
        self.ttl_scope = ttl_scope
        self.socket_timeout = socket_timeout
        self.logger = get_logger("tracking.cache.redis")
        self.redis: Optional[redis.Redis] = client

    async def start(self):
        """Start the Redis cache."""
        if self.redis is None:
            self.redis = redis.from_url(
                self.redis_url,
                socket_connect_timeout=self.socket_timeout,
                socket_timeout=self.socket_timeout,
                health_check_interval=30
            )

        try:
            await self.redis.ping()
        except CONNECTIVITY_ERRORS as e:
            self.logger.error("Failed to start Redis cache", error=str(e))
            raise TrackingTransientError("redis", str(e)) from e

        self.logger.info(
            "Redis cache started",
            namespace=self.namespace,
            ttl_seconds=self.ttl_seconds,
            ttl_scope=self.ttl_scope
        )

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis cache stopped")

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise TrackingTransientError("redis", "Cache client not started")
        return self.redis

    async def get(self, key: str) -> Optional[bytes]:
        """Return the cached payload for ``key``, or None on a miss."""
        try:
            cached = await self._client().hget(self.namespace, key)
        except CONNECTIVITY_ERRORS as e:
            self.logger.error("Cache read error", key=key, error=str(e))
            raise TrackingTransientError("redis", str(e), {"key": key}) from e

        if cached is None:
            return None
        if isinstance(cached, str):
            return cached.encode("utf-8")
        return cached

    async def put(self, key: str, data: bytes) -> None:
        """Write ``data`` as the hash field ``key``."""
        try:
            await self._client().hset(self.namespace, key, data)
        except CONNECTIVITY_ERRORS as e:
            raise TrackingTransientError("redis", str(e), {"key": key}) from e

    async def set_expiry(self, namespace: str, ttl_seconds: int) -> None:
        """Apply a TTL to a whole hash; every field shares its fate."""
        try:
            await self._client().expire(namespace, ttl_seconds)
        except CONNECTIVITY_ERRORS as e:
            raise TrackingTransientError("redis", str(e), {"namespace": namespace}) from e

    async def set_entry_expiry(self, key: str, ttl_seconds: int) -> None:
        """Apply a TTL to one hash field (requires Redis 7.4+)."""
        try:
            await self._client().hexpire(self.namespace, ttl_seconds, key)
        except CONNECTIVITY_ERRORS as e:
            raise TrackingTransientError("redis", str(e), {"key": key}) from e

    async def store(self, key: str, data: bytes) -> None:
        """Write a payload together with its expiry in one MULTI/EXEC.

        Either both commands apply or neither does, so a field is never left
        in the hash without a TTL. On Redis below 7.4 ``HEXPIRE`` is rejected
        while queueing, which aborts the whole transaction.
        """
        pipe = self._client().pipeline(transaction=True)
        pipe.hset(self.namespace, key, data)
        if self.ttl_scope == TTL_SCOPE_ENTRY:
            pipe.hexpire(self.namespace, self.ttl_seconds, key)
        else:
            pipe.expire(self.namespace, self.ttl_seconds)

        try:
            await pipe.execute()
        except CONNECTIVITY_ERRORS as e:
            raise TrackingTransientError("redis", str(e), {"key": key}) from e

        self.logger.debug("Cached tracking record", key=key, ttl=self.ttl_seconds, scope=self.ttl_scope)

    async def health_check(self) -> bool:
        """Check Redis health."""
        if self.redis is None:
            return False
        try:
            await self.redis.ping()
            return True
        except CONNECTIVITY_ERRORS:
            return False
