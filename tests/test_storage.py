"""
Tests for URL repository strategies.
"""
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from shortlink_app.exceptions import ConstraintKind, NotFoundError, RepositoryError, UniqueViolation
from shortlink_app.models.url import DEDUP_KEY_CONSTRAINT, SHORT_CODE_CONSTRAINT
from shortlink_app.schemas.url import URLEntity, utcnow
from shortlink_app.storage.factory import RepositoryFactory, StorageBackend
from shortlink_app.storage.strategies import InMemoryURLRepository, SQLAlchemyURLRepository


def entity(short_code, url="https://example.com/a", owner_id=1, **kwargs):
    return URLEntity(short_code=short_code, original_url=url, owner_id=owner_id, **kwargs)


@pytest.fixture(params=["sqlalchemy", "memory"])
def store(request, repository, memory_repository):
    """Run the same contract tests against both backends"""
    return repository if request.param == "sqlalchemy" else memory_repository


class TestRepositoryContract:
    """Behaviour shared by every URL repository"""

    def test_create_assigns_id_and_timestamps(self, store):
        created = store.create(entity("abc1234", url_metadata={"source": "test"}))

        assert created.id is not None
        assert created.created_at is not None
        assert created.created_at.tzinfo is not None
        assert created.click_count == 0
        assert created.is_active is True
        assert created.url_metadata == {"source": "test"}

    def test_get_by_short_code(self, store):
        store.create(entity("abc1234"))

        found = store.get_by_short_code("abc1234")

        assert found.original_url == "https://example.com/a"
        assert store.get_by_short_code("missing") is None

    def test_duplicate_short_code(self, store):
        store.create(entity("abc1234"))

        with pytest.raises(UniqueViolation) as exc_info:
            store.create(entity("abc1234", url="https://example.com/b"))

        assert exc_info.value.kind == ConstraintKind.SHORT_CODE
        assert exc_info.value.constraint == SHORT_CODE_CONSTRAINT

    def test_duplicate_owner_and_url(self, store):
        store.create(entity("abc1234"))

        with pytest.raises(UniqueViolation) as exc_info:
            store.create(entity("xyz9876"))

        assert exc_info.value.kind == ConstraintKind.DEDUP_KEY
        assert exc_info.value.constraint == DEDUP_KEY_CONSTRAINT

    def test_same_url_for_other_owner(self, store):
        store.create(entity("abc1234", owner_id=1))
        store.create(entity("xyz9876", owner_id=2))

        assert store.get_by_owner_and_url("https://example.com/a", 2).short_code == "xyz9876"

    def test_get_by_owner_and_url(self, store):
        store.create(entity("abc1234"))

        assert store.get_by_owner_and_url("https://example.com/a", 1).short_code == "abc1234"
        assert store.get_by_owner_and_url("https://example.com/b", 1) is None

    def test_expired_row_is_tombstoned_on_lookup(self, store):
        store.create(entity("old1234", expires_at=utcnow() - timedelta(seconds=5)))

        assert store.get_by_owner_and_url("https://example.com/a", 1) is None

        old = store.get_by_short_code("old1234")
        assert old.deleted_at is not None
        assert old.is_active is False

        # The pair is free again, the old code is not
        store.create(entity("new1234"))
        with pytest.raises(UniqueViolation):
            store.create(entity("old1234", url="https://example.com/b"))

    def test_soft_delete(self, store):
        store.create(entity("abc1234"))

        store.soft_delete("abc1234")

        deleted = store.get_by_short_code("abc1234")
        assert deleted.is_live() is False
        assert deleted.deleted_at is not None
        assert store.get_by_owner_and_url("https://example.com/a", 1) is None

        with pytest.raises(NotFoundError):
            store.soft_delete("abc1234")
        with pytest.raises(NotFoundError):
            store.soft_delete("missing")

    def test_increment_click_count(self, store):
        store.create(entity("abc1234"))

        for _ in range(3):
            store.increment_click_count("abc1234")

        assert store.get_by_short_code("abc1234").click_count == 3

    def test_increment_on_deleted_url(self, store):
        store.create(entity("abc1234"))
        store.soft_delete("abc1234")

        with pytest.raises(NotFoundError):
            store.increment_click_count("abc1234")

    def test_update(self, store):
        created = store.create(entity("abc1234"))
        expires_at = utcnow() + timedelta(hours=1)

        updated = store.update(created.model_copy(update={
            "expires_at": expires_at,
            "url_metadata": {"campaign": "spring"},
        }))

        assert updated.url_metadata == {"campaign": "spring"}
        assert abs((updated.expires_at - expires_at).total_seconds()) < 1
        assert store.get_by_short_code("abc1234").url_metadata == {"campaign": "spring"}

    def test_update_deleted_url(self, store):
        created = store.create(entity("abc1234"))
        store.soft_delete("abc1234")

        with pytest.raises(NotFoundError):
            store.update(created)

    def test_list_by_owner(self, store):
        now = utcnow()
        store.create(entity("first01", url="https://example.com/1", created_at=now - timedelta(minutes=3)))
        store.create(entity("second2", url="https://example.com/2", created_at=now - timedelta(minutes=2)))
        store.create(entity("third03", url="https://example.com/3", created_at=now - timedelta(minutes=1)))
        store.create(entity("expired", url="https://example.com/4", expires_at=now - timedelta(seconds=1)))
        store.create(entity("other01", url="https://example.com/1", owner_id=2))
        store.soft_delete("second2")

        listed = store.list_by_owner(1, limit=10, offset=0)

        assert [e.short_code for e in listed] == ["third03", "first01"]
        assert [e.short_code for e in store.list_by_owner(1, limit=1, offset=1)] == ["first01"]


class TestSQLAlchemyRepository:
    """SQLAlchemy specifics"""

    def test_database_errors_become_repository_errors(self):
        class BrokenSession:
            def query(self, *args):
                raise OperationalError("SELECT", {}, Exception("database is locked"))

            def rollback(self):
                pass

            def close(self):
                pass

        repository = SQLAlchemyURLRepository(lambda: BrokenSession())

        with pytest.raises(RepositoryError):
            repository.get_by_short_code("abc1234")

    def test_returned_entities_are_detached(self, repository):
        created = repository.create(entity("abc1234"))
        repository.increment_click_count("abc1234")

        # Values were copied out of the session
        assert created.click_count == 0
        assert repository.get_by_short_code("abc1234").click_count == 1


class TestInMemoryRepository:
    """In-memory specifics"""

    def test_returns_copies(self, memory_repository):
        memory_repository.create(entity("abc1234"))

        found = memory_repository.get_by_short_code("abc1234")
        found.click_count = 99

        assert memory_repository.get_by_short_code("abc1234").click_count == 0

    def test_count_includes_tombstones(self, memory_repository):
        memory_repository.create(entity("abc1234"))
        memory_repository.soft_delete("abc1234")
        memory_repository.create(entity("xyz9876"))

        assert memory_repository.count() == 2


class TestRepositoryFactory:
    """Test repository factory"""

    def setup_method(self):
        RepositoryFactory.clear_instance()

    def teardown_method(self):
        RepositoryFactory.clear_instance()

    def test_creates_memory_repository(self):
        repository = RepositoryFactory.create(StorageBackend.MEMORY)
        assert isinstance(repository, InMemoryURLRepository)

    def test_returns_singleton(self):
        first = RepositoryFactory.create(StorageBackend.MEMORY)
        second = RepositoryFactory.create(StorageBackend.MEMORY)
        assert first is second
