"""
Expiring key/value stores backing the response cache.
"""

import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as redis

from shared.config import BaseConfig
from shared.errors import StoreUnavailable
from shared.logging import get_logger


DEFAULT_MAX_SIZE_BYTES = 50_000_000


class KeyValueStore(ABC):
    """Async expiring string store."""

    backend = "abstract"

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value for key, or None when absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_ms: Optional[int] = None) -> None:
        """Store value; without ttl_ms it lives until evicted."""

    async def stats(self) -> Dict[str, Any]:
        return {"backend": self.backend}

    async def close(self) -> None:
        return None


class MemoryStore(KeyValueStore):
    """In-process LRU store bounded by approximate byte size.

    Size of an entry is ``len(value) + len(key)``. Expired entries are dropped
    when read; there is no background sweep.
    """

    backend = "memory"

    def __init__(self, max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES, clock: Callable[[], float] = time.monotonic):
        self.max_size_bytes = max_size_bytes
        self.clock = clock
        self.logger = get_logger("query_cache.store.memory")
        # key -> (value, expires_at, size)
        self._entries: "OrderedDict[str, Tuple[str, Optional[float], int]]" = OrderedDict()
        self._size = 0
        self._lock = threading.Lock()
        self.logger.info("Creating memory store", max_size_bytes=max_size_bytes)

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            value, expires_at, size = entry
            if expires_at is not None and self.clock() >= expires_at:
                del self._entries[key]
                self._size -= size
                return None

            self._entries.move_to_end(key)
            return value

    async def set(self, key: str, value: str, ttl_ms: Optional[int] = None) -> None:
        size = len(value) + len(key)
        expires_at = self.clock() + ttl_ms / 1000 if ttl_ms else None

        with self._lock:
            previous = self._entries.pop(key, None)
            if previous is not None:
                self._size -= previous[2]

            if size > self.max_size_bytes:
                self.logger.warning("Entry larger than store bound, not stored", key=key, size=size)
                return

            self._entries[key] = (value, expires_at, size)
            self._size += size

            while self._size > self.max_size_bytes:
                evicted_key, (_, _, evicted_size) = self._entries.popitem(last=False)
                self._size -= evicted_size
                self.logger.debug("Evicted least recently used entry", key=evicted_key)

    async def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "backend": self.backend,
                "entries": len(self._entries),
                "size_bytes": self._size,
                "max_size_bytes": self.max_size_bytes,
            }

    def __len__(self) -> int:
        return len(self._entries)


class RedisStore(KeyValueStore):
    """Networked store; any backend failure surfaces as StoreUnavailable."""

    backend = "redis"

    def __init__(self, redis_url: str, key_prefix: str = "query_cache:"):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.logger = get_logger("query_cache.store.redis")
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        return self._redis

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> Optional[str]:
        try:
            client = await self._get_redis()
            value = await client.get(self._make_key(key))
        except (redis.RedisError, OSError) as exc:
            raise StoreUnavailable(self.backend, str(exc), {"operation": "get"}) from exc

        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl_ms: Optional[int] = None) -> None:
        try:
            client = await self._get_redis()
            if ttl_ms:
                await client.set(self._make_key(key), value, px=int(ttl_ms))
            else:
                await client.set(self._make_key(key), value)
        except (redis.RedisError, OSError) as exc:
            raise StoreUnavailable(self.backend, str(exc), {"operation": "set"}) from exc

    async def stats(self) -> Dict[str, Any]:
        try:
            client = await self._get_redis()
            keys = await client.dbsize()
        except (redis.RedisError, OSError) as exc:
            self.logger.error("Cache stats error", error=str(exc))
            return {"backend": self.backend, "error": str(exc)}
        return {"backend": self.backend, "keys": keys, "key_prefix": self.key_prefix}

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("Redis store closed")


def create_store(config: BaseConfig) -> KeyValueStore:
    """Build the store backend named by configuration."""
    if config.cache_backend == "redis":
        return RedisStore(config.redis_url, key_prefix=config.redis_key_prefix)
    return MemoryStore(max_size_bytes=config.cache_max_size_bytes)
