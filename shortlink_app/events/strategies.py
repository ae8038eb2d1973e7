"""
Event sink strategies using Strategy Pattern.
Allows switching between different publication backends (Redis Streams, In-Memory, Null).

The URL service only ever writes to a sink. Publishing is fire-and-forget
from its point of view: a failure raises EventPublishError, which the
caller logs and drops.
"""

from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime, timezone
from typing import Deque, List, Sequence, Tuple

import redis

from .models import (
    ClickEvent,
    EventEnvelope,
    TOPIC_URL_CLICKED,
    TOPIC_URL_CREATED,
    TOPIC_URL_UPDATED,
)
from shortlink_app.exceptions import EventPublishError
from shortlink_app.schemas.url import URLEntity


class EventSink(ABC):
    """
    Abstract base class for event sinks.

    Subclasses implement _publish(); envelopes are built here so every
    backend emits the same payloads.
    """

    @abstractmethod
    async def _publish(self, topic: str, key: str, envelope: EventEnvelope) -> None:
        """
        Deliver one envelope.

        Args:
            topic: Logical topic name (url.created, ...)
            key: Partition key, always the short code
            envelope: Event to deliver

        Raises:
            EventPublishError: If the backend rejected the event
        """
        pass

    async def close(self) -> None:
        """Release backend resources"""
        return None

    async def publish_created(self, entity: URLEntity) -> None:
        envelope = EventEnvelope(
            event_type="url_created",
            timestamp=entity.created_at or datetime.now(timezone.utc),
            data={
                "short_code": entity.short_code,
                "original_url": entity.original_url,
                "owner_id": entity.owner_id,
                "expires_at": entity.expires_at.isoformat() if entity.expires_at else None,
            },
        )
        await self._publish(TOPIC_URL_CREATED, entity.short_code, envelope)

    async def publish_updated(self, entity: URLEntity, changed_fields: Sequence[str]) -> None:
        data = {
            "short_code": entity.short_code,
            "original_url": entity.original_url,
            "owner_id": entity.owner_id,
            "updated_fields": list(changed_fields),
        }
        if entity.expires_at is not None:
            data["expires_at"] = entity.expires_at.isoformat()
        if entity.url_metadata:
            data["metadata"] = dict(entity.url_metadata)

        envelope = EventEnvelope(
            event_type="url_updated",
            timestamp=datetime.now(timezone.utc),
            data=data,
        )
        await self._publish(TOPIC_URL_UPDATED, entity.short_code, envelope)

    async def publish_clicked(self, event: ClickEvent) -> None:
        envelope = EventEnvelope(
            event_type="url_clicked",
            timestamp=event.timestamp,
            data={
                "short_code": event.short_code,
                "user_agent": event.user_agent,
                "ip_address": event.ip_address,
                "referrer": event.referrer,
            },
        )
        await self._publish(TOPIC_URL_CLICKED, event.short_code, envelope)


class RedisStreamEventSink(EventSink):
    """
    Redis Streams implementation.

    Each topic maps to one stream ("<prefix>:<topic>"); events are appended
    with XADD and capped with an approximate MAXLEN so an absent consumer
    cannot grow the stream without bound.
    """

    def __init__(self, redis_client, stream_prefix: str = "shortlink", maxlen: int = 100_000):
        """
        Initialize Redis Streams sink.

        Args:
            redis_client: Redis client instance
            stream_prefix: Prefix for stream names
            maxlen: Approximate cap per stream
        """
        self.redis = redis_client
        self.stream_prefix = stream_prefix
        self.maxlen = maxlen

    def stream_name(self, topic: str) -> str:
        return f"{self.stream_prefix}:{topic}"

    async def _publish(self, topic: str, key: str, envelope: EventEnvelope) -> None:
        try:
            self.redis.xadd(
                self.stream_name(topic),
                {"key": key, "data": envelope.model_dump_json()},
                maxlen=self.maxlen,
                approximate=True,
            )
        except redis.RedisError as e:
            raise EventPublishError(f"Redis publish error on {topic}: {e}") from e

    async def close(self) -> None:
        self.redis.close()


class InMemoryEventSink(EventSink):
    """
    In-memory sink that keeps the most recent events in a ring buffer.

    Used in development/testing environments and as the Redis-unavailable
    fallback; past max_events the oldest event is dropped.
    """

    def __init__(self, max_events: int = 10_000):
        self.events: Deque[Tuple[str, str, EventEnvelope]] = deque(maxlen=max_events)

    async def _publish(self, topic: str, key: str, envelope: EventEnvelope) -> None:
        self.events.append((topic, key, envelope))

    def published(self, topic: str) -> List[EventEnvelope]:
        """Envelopes published on one topic, oldest first"""
        return [envelope for t, _, envelope in self.events if t == topic]


class NullEventSink(EventSink):
    """Null Object Pattern - sink that discards everything."""

    async def _publish(self, topic: str, key: str, envelope: EventEnvelope) -> None:
        return None
