"""
Cache strategies using Strategy Pattern.
Allows switching between different cache backends (Redis, In-Memory, Null).

Two independent keyspaces:
- entity cache:   short code -> URLEntity
- response cache: dedup key  -> URLResponse

The cache is read-through / write-around and never a source of truth.
"""

import redis
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

from shortlink_app.cache.keys import (
    DEFAULT_ENTITY_TTL,
    DEFAULT_RESPONSE_TTL,
    URL_PREFIX,
    entity_key,
    entity_ttl,
    response_key,
)
from shortlink_app.exceptions import CacheError
from shortlink_app.schemas.url import URLEntity, URLResponse

# Bound for the process-local backend; Redis enforces its own maxmemory
DEFAULT_MAX_ENTRIES = 10_000


class CacheStrategy(ABC):
    """
    Abstract base class for cache strategies.

    All methods are async because cache operations involve I/O (network for Redis).
    Backends raise CacheError on failure; callers treat it as a miss.
    """

    def __init__(self, entity_ttl: int = DEFAULT_ENTITY_TTL):
        self.default_entity_ttl = entity_ttl

    # Entity keyspace

    @abstractmethod
    async def get(self, short_code: str) -> Optional[URLEntity]:
        """
        Get a cached entity.

        Returns:
            Cached entity or None if not found
        """
        pass

    @abstractmethod
    async def set(self, entity: URLEntity) -> bool:
        """
        Cache an entity until it expires (or for the default TTL).

        Returns:
            True if written, False if the entity was already expired
        """
        pass

    @abstractmethod
    async def delete(self, short_code: str) -> bool:
        """
        Evict an entity.

        Returns:
            True if deleted, False if key didn't exist
        """
        pass

    @abstractmethod
    async def invalidate(self, prefix: str) -> int:
        """
        Evict every entity whose short code starts with prefix.

        Returns:
            Number of evicted keys
        """
        pass

    # Response keyspace

    @abstractmethod
    async def get_response(self, key: str) -> Optional[URLResponse]:
        pass

    @abstractmethod
    async def set_response(self, key: str, response: URLResponse, ttl: int = DEFAULT_RESPONSE_TTL) -> bool:
        pass

    @abstractmethod
    async def delete_response(self, key: str) -> bool:
        pass

    @abstractmethod
    async def clear(self) -> bool:
        """
        Clear all cache entries.

        Returns:
            True if successful
        """
        pass


class RedisCache(CacheStrategy):
    """
    Redis cache implementation.

    Entities and responses are stored as JSON strings with SETEX.
    Shared by every app instance, so it is the production backend.
    """

    def __init__(self, redis_client, entity_ttl: int = DEFAULT_ENTITY_TTL):
        """
        Initialize Redis cache.

        Args:
            redis_client: Redis client instance (redis.Redis)
            entity_ttl: TTL for entities without an expiry
        """
        super().__init__(entity_ttl)
        self.redis = redis_client

    def _call(self, operation: str, func, *args):
        try:
            return func(*args)
        except redis.RedisError as e:
            raise CacheError(f"Redis {operation} error: {e}") from e

    async def get(self, short_code: str) -> Optional[URLEntity]:
        value = self._call("get", self.redis.get, entity_key(short_code))
        if value is None:
            return None
        try:
            return URLEntity.model_validate_json(value)
        except ValueError as e:
            raise CacheError(f"corrupt cache entry for {short_code}: {e}") from e

    async def set(self, entity: URLEntity) -> bool:
        ttl = entity_ttl(entity, self.default_entity_ttl)
        key = entity_key(entity.short_code)
        if ttl <= 0:
            # SETEX rejects 0; an expired entity must not linger either
            self._call("delete", self.redis.delete, key)
            return False
        self._call("set", self.redis.setex, key, ttl, entity.model_dump_json())
        return True

    async def delete(self, short_code: str) -> bool:
        return bool(self._call("delete", self.redis.delete, entity_key(short_code)))

    async def invalidate(self, prefix: str) -> int:
        keys = list(self._call("scan", self.redis.scan_iter, f"{URL_PREFIX}{prefix}*"))
        if not keys:
            return 0
        return int(self._call("delete", self.redis.delete, *keys))

    async def get_response(self, key: str) -> Optional[URLResponse]:
        value = self._call("get", self.redis.get, response_key(key))
        if value is None:
            return None
        try:
            return URLResponse.model_validate_json(value)
        except ValueError as e:
            raise CacheError(f"corrupt response cache entry {key}: {e}") from e

    async def set_response(self, key: str, response: URLResponse, ttl: int = DEFAULT_RESPONSE_TTL) -> bool:
        if ttl <= 0:
            ttl = DEFAULT_RESPONSE_TTL
        self._call("set", self.redis.setex, response_key(key), ttl, response.model_dump_json())
        return True

    async def delete_response(self, key: str) -> bool:
        return bool(self._call("delete", self.redis.delete, response_key(key)))

    async def clear(self) -> bool:
        """Clear all Redis keys (use with caution!)"""
        self._call("flushdb", self.redis.flushdb)
        return True


class InMemoryCache(CacheStrategy):
    """
    In-memory cache implementation using Python dict.

    TTLs are enforced on read, and expired keys are swept when the cache is
    full. Past max_entries the oldest write is evicted. Not shared between
    processes, so it is meant for development, tests and the
    Redis-unavailable fallback.
    """

    def __init__(
        self,
        entity_ttl: int = DEFAULT_ENTITY_TTL,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock=time.monotonic
    ):
        super().__init__(entity_ttl)
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._clock = clock
        self._cache: Dict[str, Tuple[str, float]] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def _get_raw(self, key: str) -> Optional[str]:
        item = self._cache.get(key)
        if item is None:
            return None
        value, deadline = item
        if deadline <= self._clock():
            del self._cache[key]
            return None
        return value

    def _set_raw(self, key: str, value: str, ttl: int):
        now = self._clock()
        # Re-inserting moves the key to the back of the eviction order
        self._cache.pop(key, None)
        if len(self._cache) >= self.max_entries:
            self._purge_expired(now)
        while len(self._cache) >= self.max_entries:
            del self._cache[next(iter(self._cache))]
        self._cache[key] = (value, now + ttl)

    def _purge_expired(self, now: float):
        expired = [key for key, (_, deadline) in self._cache.items() if deadline <= now]
        for key in expired:
            del self._cache[key]

    def _delete_raw(self, key: str) -> bool:
        return self._cache.pop(key, None) is not None

    async def get(self, short_code: str) -> Optional[URLEntity]:
        value = self._get_raw(entity_key(short_code))
        return URLEntity.model_validate_json(value) if value is not None else None

    async def set(self, entity: URLEntity) -> bool:
        ttl = entity_ttl(entity, self.default_entity_ttl)
        if ttl <= 0:
            self._delete_raw(entity_key(entity.short_code))
            return False
        self._set_raw(entity_key(entity.short_code), entity.model_dump_json(), ttl)
        return True

    async def delete(self, short_code: str) -> bool:
        return self._delete_raw(entity_key(short_code))

    async def invalidate(self, prefix: str) -> int:
        pattern = f"{URL_PREFIX}{prefix}"
        keys = [key for key in self._cache if key.startswith(pattern)]
        for key in keys:
            del self._cache[key]
        return len(keys)

    async def get_response(self, key: str) -> Optional[URLResponse]:
        value = self._get_raw(response_key(key))
        return URLResponse.model_validate_json(value) if value is not None else None

    async def set_response(self, key: str, response: URLResponse, ttl: int = DEFAULT_RESPONSE_TTL) -> bool:
        if ttl <= 0:
            ttl = DEFAULT_RESPONSE_TTL
        self._set_raw(response_key(key), response.model_dump_json(), ttl)
        return True

    async def delete_response(self, key: str) -> bool:
        return self._delete_raw(response_key(key))

    async def clear(self) -> bool:
        self._cache.clear()
        return True


class NullCache(CacheStrategy):
    """
    Null Object Pattern - cache that does nothing.

    Every read is a miss, so the store answers everything.
    """

    async def get(self, short_code: str) -> Optional[URLEntity]:
        return None

    async def set(self, entity: URLEntity) -> bool:
        return True

    async def delete(self, short_code: str) -> bool:
        return True

    async def invalidate(self, prefix: str) -> int:
        return 0

    async def get_response(self, key: str) -> Optional[URLResponse]:
        return None

    async def set_response(self, key: str, response: URLResponse, ttl: int = DEFAULT_RESPONSE_TTL) -> bool:
        return True

    async def delete_response(self, key: str) -> bool:
        return True

    async def clear(self) -> bool:
        return True
