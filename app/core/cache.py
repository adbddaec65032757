"""Redis response cache keyed by a hash of the normalized request.

Keys look like ``<prefix>:<namespace>:<md5>``, where the md5 is taken over the
JSON encoding (sorted keys) of the normalized request parameters. Values are
JSON documents stored with ``SETEX``.

The cache is strictly best-effort: when disabled every call is a no-op, and
Redis failures are logged as warnings and reported as a miss.
"""

import hashlib
import json
from collections.abc import Iterable
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


def _json_default(value: Any) -> Any:
    """Serialize the scalar types returned by asyncpg."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def hash_params(payload: dict[str, Any]) -> str:
    """Return the md5 hex digest of a payload's canonical JSON encoding."""
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=_json_default)
    return hashlib.md5(encoded.encode("utf-8")).hexdigest()  # noqa: S324


def normalize_codes(codes: Iterable[str] | None) -> list[str]:
    """Sort and de-duplicate a list of codes so equivalent requests share a key."""
    return sorted(set(codes or []))


class ResponseCache:
    """Best-effort JSON cache on top of an async Redis client."""

    def __init__(self, client: Redis | None, prefix: str, enabled: bool) -> None:
        """Initialize the cache.

        Args:
            client: Async Redis client (None disables the cache).
            prefix: Key prefix shared by every namespace.
            enabled: Master switch from settings.
        """
        self.client = client
        self.prefix = prefix
        self.enabled = enabled and client is not None

    def build_key(self, namespace: str, payload: dict[str, Any]) -> str:
        """Build the cache key for a namespace and normalized payload."""
        return f"{self.prefix}:{namespace}:{hash_params(payload)}"

    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the cached document, or None on miss/disabled/error."""
        if not self.enabled or self.client is None:
            return None
        try:
            raw = await self.client.get(key)
        except RedisError as e:
            logger.warning("cache.read_failed", key=key, error=str(e))
            return None

        if raw is None:
            logger.debug("cache.miss", key=key)
            return None

        try:
            value: dict[str, Any] = json.loads(raw)
        except ValueError:
            logger.warning("cache.decode_failed", key=key)
            return None

        logger.debug("cache.hit", key=key)
        return value

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        """Store a document for ``ttl_seconds``; errors are only logged."""
        if not self.enabled or self.client is None or ttl_seconds <= 0:
            return
        payload = json.dumps(value, ensure_ascii=False, default=_json_default)
        try:
            await self.client.setex(key, ttl_seconds, payload)
        except RedisError as e:
            logger.warning("cache.write_failed", key=key, error=str(e))
            return
        logger.debug("cache.stored", key=key, ttl_seconds=ttl_seconds)

    async def invalidate(self, namespace: str = "*") -> int:
        """Delete every key in a namespace (every namespace by default).

        Returns:
            Number of keys deleted.
        """
        if not self.enabled or self.client is None:
            return 0
        pattern = f"{self.prefix}:{namespace}:*"
        deleted = 0
        try:
            async for key in self.client.scan_iter(match=pattern):
                deleted += await self.client.delete(key)
        except RedisError as e:
            logger.warning("cache.invalidate_failed", pattern=pattern, error=str(e))
        logger.info("cache.invalidated", pattern=pattern, deleted=deleted)
        return deleted

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        if self.client is None:
            return False
        try:
            return bool(await self.client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        """Close the underlying connection pool."""
        if self.client is not None:
            await self.client.aclose()


_cache: ResponseCache | None = None


def get_cache() -> ResponseCache:
    """Dependency returning the process-wide response cache."""
    global _cache
    if _cache is None:
        settings = get_settings()
        client = (
            Redis.from_url(settings.redis_url, decode_responses=True)
            if settings.cache_enabled
            else None
        )
        _cache = ResponseCache(client, settings.cache_prefix, settings.cache_enabled)
    return _cache


async def close_cache() -> None:
    """Close and forget the process-wide cache (application shutdown)."""
    global _cache
    if _cache is not None:
        await _cache.close()
        _cache = None
