"""Tests for the Redis response cache."""

import json
from datetime import date
from decimal import Decimal

from app.core.cache import ResponseCache, hash_params, normalize_codes


class TestKeys:
    def test_hash_ignores_key_order(self):
        assert hash_params({"a": 1, "b": [1, 2]}) == hash_params({"b": [1, 2], "a": 1})

    def test_hash_serializes_dates_and_decimals(self):
        digest = hash_params({"start": date(2025, 1, 1), "ca": Decimal("1.5")})

        assert len(digest) == 32

    def test_normalize_codes(self):
        """Equivalent selections should share a key."""
        assert normalize_codes(["B", "A", "B"]) == ["A", "B"]
        assert normalize_codes(None) == []

    def test_build_key(self, memory_redis):
        cache = ResponseCache(memory_redis, "apodata", enabled=True)

        key = cache.build_key("kpis", {"x": 1})

        assert key.startswith("apodata:kpis:")


class TestResponseCache:
    async def test_round_trip(self, memory_redis):
        cache = ResponseCache(memory_redis, "apodata", enabled=True)

        await cache.set("apodata:kpis:1", {"ca_ttc": Decimal("12.5")}, ttl_seconds=60)

        assert await cache.get("apodata:kpis:1") == {"ca_ttc": 12.5}
        assert memory_redis.ttls["apodata:kpis:1"] == 60

    async def test_disabled_is_noop(self, memory_redis):
        cache = ResponseCache(memory_redis, "apodata", enabled=False)

        await cache.set("k", {"a": 1}, ttl_seconds=60)

        assert memory_redis.data == {}
        assert await cache.get("k") is None
        assert await cache.invalidate("kpis") == 0

    async def test_without_client_is_disabled(self):
        cache = ResponseCache(None, "apodata", enabled=True)

        assert cache.enabled is False
        assert await cache.ping() is False

    async def test_zero_ttl_not_stored(self, memory_redis):
        cache = ResponseCache(memory_redis, "apodata", enabled=True)

        await cache.set("k", {"a": 1}, ttl_seconds=0)

        assert memory_redis.data == {}

    async def test_corrupt_entry_is_a_miss(self, memory_redis):
        memory_redis.data["k"] = "{not json"
        cache = ResponseCache(memory_redis, "apodata", enabled=True)

        assert await cache.get("k") is None

    async def test_redis_errors_are_misses(self, failing_redis):
        """A Redis outage should never fail the request."""
        cache = ResponseCache(failing_redis, "apodata", enabled=True)

        await cache.set("k", {"a": 1}, ttl_seconds=60)

        assert await cache.get("k") is None
        assert await cache.ping() is False

    async def test_invalidate_namespace(self, memory_redis):
        memory_redis.data.update(
            {
                "apodata:sales:1": json.dumps({}),
                "apodata:sales:2": json.dumps({}),
                "apodata:kpis:1": json.dumps({}),
            }
        )
        cache = ResponseCache(memory_redis, "apodata", enabled=True)

        deleted = await cache.invalidate("sales")

        assert deleted == 2
        assert list(memory_redis.data) == ["apodata:kpis:1"]

    async def test_invalidate_every_namespace(self, memory_redis):
        """Without a namespace only keys under the prefix should go."""
        memory_redis.data.update(
            {
                "apodata:sales:1": json.dumps({}),
                "apodata:kpis:1": json.dumps({}),
                "other:kpis:1": json.dumps({}),
            }
        )
        cache = ResponseCache(memory_redis, "apodata", enabled=True)

        deleted = await cache.invalidate()

        assert deleted == 2
        assert list(memory_redis.data) == ["other:kpis:1"]

    async def test_close(self, memory_redis):
        cache = ResponseCache(memory_redis, "apodata", enabled=True)

        await cache.close()

        assert memory_redis.closed is True
