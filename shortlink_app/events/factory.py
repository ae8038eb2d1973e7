"""
Builds the process-wide event sink from settings.
"""

import logging
from enum import Enum

import redis

from .strategies import EventSink, RedisStreamEventSink, InMemoryEventSink, NullEventSink
from shortlink_app import redis_client
from shortlink_app.config import settings

logger = logging.getLogger(__name__)


class EventSinkBackend(Enum):
    """Available event sink backends"""
    REDIS_STREAMS = "redis_streams"
    MEMORY = "memory"
    NULL = "null"


class EventSinkFactory:
    """
    Holds the one event sink shared by every request and click job.

    An unreachable Redis at startup degrades to the in-memory sink.
    """

    _instance: EventSink = None

    @classmethod
    def create(cls, backend: EventSinkBackend) -> EventSink:
        """
        Return the shared sink, building it on first use.

        Raises:
            ValueError: If backend is unknown
        """
        if cls._instance is not None:
            return cls._instance

        if backend == EventSinkBackend.REDIS_STREAMS:
            try:
                cls._instance = RedisStreamEventSink(
                    redis_client.connect(),
                    stream_prefix=settings.event_stream_prefix
                )
                logger.info("Redis Streams event sink initialized")
            except redis.RedisError as e:
                logger.warning("Redis connection failed (%s), falling back to in-memory event sink", e)
                cls._instance = InMemoryEventSink(max_events=settings.memory_event_buffer)

        elif backend == EventSinkBackend.MEMORY:
            cls._instance = InMemoryEventSink(max_events=settings.memory_event_buffer)
            logger.info("In-memory event sink initialized")

        elif backend == EventSinkBackend.NULL:
            cls._instance = NullEventSink()
            logger.info("Event publishing disabled")

        else:
            raise ValueError(f"Unknown event sink backend: {backend}")

        return cls._instance

    @classmethod
    def clear_instance(cls):
        cls._instance = None
