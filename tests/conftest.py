"""
Test configuration and fixtures for the shortlink service.
This centralizes all test setup, making individual tests clean.
"""

import pytest
from fastapi.testclient import TestClient

from main import app
from shortlink_app.cache.strategies import InMemoryCache
from shortlink_app.database.connection import Base, make_engine, make_session_factory
from shortlink_app.dependencies import (
    get_cache,
    get_click_recorder,
    get_event_sink,
    get_repository,
)
from shortlink_app.events.strategies import InMemoryEventSink
from shortlink_app.hit_processor.click_recorder import ClickRecorder
from shortlink_app.storage.strategies import InMemoryURLRepository, SQLAlchemyURLRepository

# Test database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = make_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = make_session_factory(engine)


@pytest.fixture(scope="function")
def session_factory():
    """
    Fresh tables for each test.
    This ensures tests are isolated and don't affect each other.
    """
    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def repository(session_factory):
    """SQLAlchemy repository on the test database"""
    return SQLAlchemyURLRepository(session_factory)


@pytest.fixture(scope="function")
def memory_repository():
    return InMemoryURLRepository()


@pytest.fixture(scope="function")
def cache():
    return InMemoryCache()


@pytest.fixture(scope="function")
def event_sink():
    return InMemoryEventSink()


@pytest.fixture(scope="function")
def client(repository, cache, event_sink):
    """
    Create a test client with store, cache and event sink overridden.
    This is the main fixture that tests will use.
    """
    recorder = ClickRecorder(workers=2, queue_size=100, task_timeout=5.0)

    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_event_sink] = lambda: event_sink
    app.dependency_overrides[get_click_recorder] = lambda: recorder

    # Entering the client runs the lifespan, which starts the recorder
    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
