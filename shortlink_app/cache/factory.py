"""
Builds the process-wide cache backend from settings.
"""

import logging
from enum import Enum

import redis

from .strategies import CacheStrategy, RedisCache, InMemoryCache, NullCache
from shortlink_app import redis_client
from shortlink_app.config import settings

logger = logging.getLogger(__name__)


class CacheBackend(Enum):
    """Available cache backends"""
    REDIS = "redis"
    MEMORY = "memory"
    NULL = "null"


class CacheFactory:
    """
    Holds the one cache instance shared by every request.

    Both keyspaces (entities and create responses) live in the same backend.
    An unreachable Redis at startup degrades to the in-memory cache.
    """

    _instance: CacheStrategy = None

    @classmethod
    def create(cls, backend: CacheBackend) -> CacheStrategy:
        """
        Return the shared cache, building it on first use.

        Args:
            backend: Which cache backend to build

        Raises:
            ValueError: If backend is unknown
        """
        if cls._instance is not None:
            return cls._instance

        ttl = settings.entity_cache_ttl

        if backend == CacheBackend.REDIS:
            try:
                cls._instance = RedisCache(redis_client.connect(), entity_ttl=ttl)
                logger.info("Redis cache initialized")
            except redis.RedisError as e:
                logger.warning("Redis connection failed (%s), falling back to in-memory cache", e)
                cls._instance = InMemoryCache(entity_ttl=ttl, max_entries=settings.memory_cache_max_entries)

        elif backend == CacheBackend.MEMORY:
            cls._instance = InMemoryCache(entity_ttl=ttl, max_entries=settings.memory_cache_max_entries)
            logger.info("In-memory cache initialized")

        elif backend == CacheBackend.NULL:
            cls._instance = NullCache(entity_ttl=ttl)
            logger.info("Cache disabled")

        else:
            raise ValueError(f"Unknown cache backend: {backend}")

        return cls._instance

    @classmethod
    def clear_instance(cls):
        cls._instance = None
