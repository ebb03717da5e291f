"""
Unit tests for the Redis tracking cache.
"""

from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError

from service_tracking.app.cache.redis_cache import TrackingCache
from shared.errors import TrackingTransientError

from conftest import TransactionalHashClient


class TestTrackingCache:
    """Test cases for TrackingCache."""

    @pytest.fixture
    def client(self):
        """Mocked redis.asyncio client."""
        return AsyncMock()

    @pytest.fixture
    def cache(self, client):
        """Cache with the default two hour shared TTL."""
        return TrackingCache("redis://localhost:6379/0", client=client)

    def test_defaults(self, cache):
        """Test namespace and TTL defaults."""
        assert cache.namespace == "logistics_cache"
        assert cache.ttl_seconds == 7200
        assert cache.ttl_scope == "namespace"

    @pytest.mark.parametrize("kwargs", [
        {"ttl_seconds": 0},
        {"ttl_seconds": -5},
        {"ttl_scope": "field"},
    ])
    def test_rejects_invalid_ttl_settings(self, kwargs):
        """Test TTL configuration is validated."""
        with pytest.raises(ValueError):
            TrackingCache("redis://localhost:6379/0", **kwargs)

    @pytest.mark.asyncio
    async def test_get_hit(self, cache, client):
        """Test reading a field from the shared hash."""
        client.hget.return_value = b'{"trackingNumber": "TW1"}'

        result = await cache.get("TW1")

        assert result == b'{"trackingNumber": "TW1"}'
        client.hget.assert_awaited_once_with("logistics_cache", "TW1")

    @pytest.mark.asyncio
    async def test_get_decoded_string_is_returned_as_bytes(self, cache, client):
        """Test clients configured with decode_responses still yield bytes."""
        client.hget.return_value = '{"trackingNumber": "TW1"}'

        assert await cache.get("TW1") == b'{"trackingNumber": "TW1"}'

    @pytest.mark.asyncio
    async def test_get_miss(self, cache, client):
        """Test a missing field is a miss, not an error."""
        client.hget.return_value = None

        assert await cache.get("TW1") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [RedisConnectionError("refused"), RedisTimeoutError("slow")])
    async def test_get_error_is_transient(self, cache, client, error):
        """Test infrastructure errors are distinguished from misses."""
        client.hget.side_effect = error

        with pytest.raises(TrackingTransientError) as exc_info:
            await cache.get("TW1")

        assert exc_info.value.backend == "redis"

    @pytest.mark.asyncio
    async def test_store_namespace_scope(self):
        """Test store writes the field and refreshes the whole hash TTL in one transaction."""
        client = TransactionalHashClient()
        cache = TrackingCache("redis://localhost:6379/0", client=client)

        await cache.store("TW1", b"payload")

        assert client.transactions == [True]
        assert client.hashes == {"logistics_cache": {"TW1": b"payload"}}
        assert client.key_ttls == {"logistics_cache": 7200}
        assert client.field_ttls == {}

    @pytest.mark.asyncio
    async def test_store_entry_scope(self):
        """Test per-field TTL isolates entries."""
        client = TransactionalHashClient()
        cache = TrackingCache(
            "redis://localhost:6379/0", ttl_seconds=900, ttl_scope="entry", client=client
        )

        await cache.store("TW1", b"payload")

        assert client.hashes == {"logistics_cache": {"TW1": b"payload"}}
        assert client.field_ttls == {("logistics_cache", "TW1"): 900}
        assert client.key_ttls == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ttl_scope, failing", [
        ("namespace", "expire"),
        ("entry", "hexpire"),
        ("namespace", "hset"),
    ])
    async def test_store_failure_leaves_no_field_behind(self, ttl_scope, failing):
        """Test a rejected write or expiry leaves no untimed field in the hash."""
        client = TransactionalHashClient(failing={failing})
        cache = TrackingCache("redis://localhost:6379/0", ttl_scope=ttl_scope, client=client)

        with pytest.raises(TrackingTransientError) as exc_info:
            await cache.store("TW1", b"payload")

        assert exc_info.value.backend == "redis"
        assert client.hashes == {}
        assert client.key_ttls == {}
        assert client.field_ttls == {}

    @pytest.mark.asyncio
    async def test_store_before_start_is_transient(self):
        """Test store without a client fails cleanly."""
        cache = TrackingCache("redis://localhost:6379/0")

        with pytest.raises(TrackingTransientError):
            await cache.store("TW1", b"payload")

    @pytest.mark.asyncio
    async def test_set_expiry_targets_given_namespace(self, cache, client):
        """Test explicit expiry call."""
        await cache.set_expiry("other_hash", 60)

        client.expire.assert_awaited_once_with("other_hash", 60)

    @pytest.mark.asyncio
    async def test_put_error_is_transient(self, cache, client):
        """Test write failures surface as transient errors."""
        client.hset.side_effect = RedisConnectionError("refused")

        with pytest.raises(TrackingTransientError):
            await cache.put("TW1", b"payload")

    @pytest.mark.asyncio
    async def test_operations_before_start_are_transient(self):
        """Test a cache without a client fails cleanly."""
        cache = TrackingCache("redis://localhost:6379/0")

        with pytest.raises(TrackingTransientError):
            await cache.get("TW1")
        assert await cache.health_check() is False

    @pytest.mark.asyncio
    async def test_start_builds_client_and_pings(self):
        """Test start connects from the URL."""
        client = AsyncMock()
        cache = TrackingCache("redis://cache:6379/1", socket_timeout=2.0)

        with patch("service_tracking.app.cache.redis_cache.redis.from_url", return_value=client) as mock_from_url:
            await cache.start()

        mock_from_url.assert_called_once()
        assert mock_from_url.call_args.args[0] == "redis://cache:6379/1"
        assert mock_from_url.call_args.kwargs["socket_timeout"] == 2.0
        client.ping.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_failure_is_transient(self, cache, client):
        """Test unreachable Redis at startup."""
        client.ping.side_effect = RedisConnectionError("refused")

        with pytest.raises(TrackingTransientError):
            await cache.start()

    @pytest.mark.asyncio
    async def test_stop_closes_client(self, cache, client):
        """Test stop releases the connection."""
        await cache.stop()

        client.aclose.assert_awaited_once()
        assert cache.redis is None

    @pytest.mark.asyncio
    async def test_health_check(self, cache, client):
        """Test Redis health check."""
        assert await cache.health_check() is True

        client.ping.side_effect = RedisConnectionError("refused")
        assert await cache.health_check() is False
