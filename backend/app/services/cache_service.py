"""
Cache port used in front of expensive dashboard reads.

Every value is JSON-encoded on write and decoded on read, strings included, so
what comes back has the structure that went in. None reads back as a miss.
Expiry is enforced by Redis (SET ... EX).
There is no dependency tracking: each write path deletes the keys it stales,
and each caller owns the namespace its keys live under (see cache_key).
A backend fault is logged and behaves like a miss, so losing Redis only costs
recomputation.
"""

import json
from functools import lru_cache
from typing import Any, Optional, Protocol
import redis.asyncio as redis
from redis.exceptions import RedisError
from loguru import logger
from app.config import get_settings

PREFIX = "cache:"


def cache_key(namespace: str, *parts) -> str:
    """Build a namespaced key, e.g. cache_key("patient_summary", 7) -> "patient_summary:7"."""
    return ":".join([namespace, *(str(p) for p in parts)])


class CachePort(Protocol):
    async def get(self, key: str) -> Optional[Any]:
        ...

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ...

    async def delete(self, *keys: str) -> None:
        ...


class RedisCache:
    def __init__(self, client: redis.Redis, default_ttl: int = 600):
        self.client = client
        self.default_ttl = default_ttl

    @classmethod
    def from_url(cls, url: str, default_ttl: int = 600) -> "RedisCache":
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        return cls(client, default_ttl=default_ttl)

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.client.get(PREFIX + key)
        except RedisError as e:
            logger.warning(f"Cache get failed for {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Cache entry {key} is not valid JSON, ignoring: {e}")
            return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        payload = json.dumps(value, default=str)
        try:
            if ttl and ttl > 0:
                await self.client.set(PREFIX + key, payload, ex=ttl)
            else:
                await self.client.set(PREFIX + key, payload)
        except RedisError as e:
            logger.warning(f"Cache set failed for {key}: {e}")

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            await self.client.delete(*(PREFIX + k for k in keys))
            logger.debug(f"Cache invalidated: {', '.join(keys)}")
        except RedisError as e:
            logger.warning(f"Cache delete failed for {', '.join(keys)}: {e}")

    async def close(self) -> None:
        await self.client.aclose()


class NullCache:
    """Used when REDIS_URL is not configured: every read is a miss."""

    async def get(self, key: str) -> Optional[Any]:
        return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        return None

    async def delete(self, *keys: str) -> None:
        return None

    async def close(self) -> None:
        return None


@lru_cache()
def get_cache() -> CachePort:
    settings = get_settings()
    if not settings.redis_url:
        logger.info("REDIS_URL not set; running without cache")
        return NullCache()
    return RedisCache.from_url(settings.redis_url, default_ttl=settings.cache_ttl_seconds)
