"""
Event sink module for the shortlink service.
Implements Strategy Pattern for flexible publication backends.
"""

from .strategies import EventSink, RedisStreamEventSink, InMemoryEventSink, NullEventSink
from .factory import EventSinkFactory, EventSinkBackend
from .models import ClickEvent, EventEnvelope

__all__ = [
    "EventSink",
    "RedisStreamEventSink",
    "InMemoryEventSink",
    "NullEventSink",
    "EventSinkFactory",
    "EventSinkBackend",
    "ClickEvent",
    "EventEnvelope",
]
