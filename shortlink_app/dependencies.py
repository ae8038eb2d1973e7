"""
FastAPI dependencies for dependency injection.

This module provides singleton instances of the repository, cache, event
sink and click recorder that are injected into the URL service and routes.

Tests override these with app.dependency_overrides.
"""

from functools import lru_cache

from fastapi import Depends

from shortlink_app.cache.factory import CacheFactory, CacheBackend
from shortlink_app.cache.strategies import CacheStrategy
from shortlink_app.config import settings
from shortlink_app.events.factory import EventSinkFactory, EventSinkBackend
from shortlink_app.events.strategies import EventSink
from shortlink_app.hit_processor.click_recorder import ClickRecorder
from shortlink_app.services.url_service import URLService
from shortlink_app.storage.factory import RepositoryFactory, StorageBackend
from shortlink_app.storage.strategies import URLRepository


@lru_cache()
def get_repository() -> URLRepository:
    """Get URL repository instance (singleton)."""
    return RepositoryFactory.create(StorageBackend(settings.storage_backend))


@lru_cache()
def get_cache() -> CacheStrategy:
    """Get cache instance (singleton)."""
    return CacheFactory.create(CacheBackend(settings.cache_backend))


@lru_cache()
def get_event_sink() -> EventSink:
    """Get event sink instance (singleton)."""
    return EventSinkFactory.create(EventSinkBackend(settings.event_sink_backend))


@lru_cache()
def get_click_recorder() -> ClickRecorder:
    """
    Get click recorder instance (singleton).

    Started and stopped by the application lifespan.
    """
    return ClickRecorder(
        workers=settings.click_workers,
        queue_size=settings.click_queue_size,
        task_timeout=settings.click_task_timeout,
    )


def get_url_service(
    repository: URLRepository = Depends(get_repository),
    cache: CacheStrategy = Depends(get_cache),
    events: EventSink = Depends(get_event_sink),
    click_recorder: ClickRecorder = Depends(get_click_recorder),
) -> URLService:
    """
    Get URLService with all dependencies injected.

    The service is stateless, so building one per request is cheap.
    """
    return URLService(
        repository=repository,
        cache=cache,
        events=events,
        click_recorder=click_recorder,
    )
