"""
URL repository strategies using Strategy Pattern.

The repository is the source of truth for URL entities and the only place
uniqueness is decided. Implementations:
- SQLAlchemyURLRepository: PostgreSQL / SQLite through SQLAlchemy
- InMemoryURLRepository: Development/testing, same constraints in Python

All methods are synchronous: from the URL service's point of view a store
call is blocking I/O.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from shortlink_app.exceptions import (
    ConstraintKind,
    NotFoundError,
    RepositoryError,
    UniqueViolation,
)
from shortlink_app.models.url import URL, DEDUP_KEY_CONSTRAINT, SHORT_CODE_CONSTRAINT
from shortlink_app.schemas.url import URLEntity, utcnow

logger = logging.getLogger(__name__)


class URLRepository(ABC):
    """
    Abstract base class for URL stores.

    "Not found" on reads is None. Mutations on a missing or non-live code
    raise NotFoundError. Storage failures raise RepositoryError, and a
    rejected insert raises UniqueViolation naming the violated rule.
    """

    @abstractmethod
    def create(self, entity: URLEntity) -> URLEntity:
        """
        Insert a new entity.

        Returns:
            The stored entity with id and created_at assigned

        Raises:
            UniqueViolation: short code taken, or a non-tombstoned row
                             exists for (owner_id, original_url)
        """
        pass

    @abstractmethod
    def get_by_short_code(self, short_code: str) -> Optional[URLEntity]:
        """Any row with this code, live or not"""
        pass

    @abstractmethod
    def get_by_owner_and_url(self, original_url: str, owner_id: int) -> Optional[URLEntity]:
        """
        Live entity for (owner_id, original_url).

        A matching row that is no longer live (expired or deactivated) is
        tombstoned on the way out so a new row can take its place.
        """
        pass

    @abstractmethod
    def update(self, entity: URLEntity) -> URLEntity:
        """Persist expires_at and metadata of a live entity"""
        pass

    @abstractmethod
    def soft_delete(self, short_code: str) -> None:
        """Deactivate and tombstone a live entity"""
        pass

    @abstractmethod
    def increment_click_count(self, short_code: str) -> None:
        """Atomically add one click"""
        pass

    @abstractmethod
    def list_by_owner(self, owner_id: int, limit: int, offset: int) -> List[URLEntity]:
        """Live entities of an owner, newest first"""
        pass


class SQLAlchemyURLRepository(URLRepository):
    """
    SQLAlchemy implementation.

    Opens one short session per operation, so a single instance is safe to
    share between request handlers and detached click jobs.
    """

    def __init__(self, session_factory: sessionmaker):
        """
        Args:
            session_factory: Factory producing new SQLAlchemy sessions
        """
        self.session_factory = session_factory

    @contextmanager
    def _session(self):
        session: Session = self.session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            session.rollback()
            raise RepositoryError(f"database error: {e}") from e
        finally:
            session.close()

    def create(self, entity: URLEntity) -> URLEntity:
        now = utcnow()
        row = URL(
            short_code=entity.short_code,
            original_url=entity.original_url,
            owner_id=entity.owner_id,
            created_at=entity.created_at or now,
            expires_at=entity.expires_at,
            click_count=0,
            is_active=True,
            url_metadata=entity.url_metadata,
            updated_at=now,
        )

        with self._session() as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise self._classify_integrity_error(e, entity) from e
            return URLEntity.model_validate(row)

    def _classify_integrity_error(self, error: IntegrityError, entity: URLEntity) -> RepositoryError:
        """
        Map an IntegrityError onto the rule it violated.

        PostgreSQL drivers report the constraint name. SQLite does not, so the
        table is asked which rule the rejected row breaks.
        """
        diag = getattr(error.orig, "diag", None)
        constraint = getattr(diag, "constraint_name", None)

        if constraint == SHORT_CODE_CONSTRAINT:
            return UniqueViolation(ConstraintKind.SHORT_CODE, constraint)
        if constraint == DEDUP_KEY_CONSTRAINT:
            return UniqueViolation(ConstraintKind.DEDUP_KEY, constraint)

        if constraint is None:
            with self._session() as session:
                code_taken = session.query(URL.id).filter(
                    URL.short_code == entity.short_code
                ).first()
                if code_taken is not None:
                    return UniqueViolation(ConstraintKind.SHORT_CODE, SHORT_CODE_CONSTRAINT)

                pair_taken = session.query(URL.id).filter(
                    URL.owner_id == entity.owner_id,
                    URL.original_url == entity.original_url,
                    URL.deleted_at.is_(None)
                ).first()
                if pair_taken is not None:
                    return UniqueViolation(ConstraintKind.DEDUP_KEY, DEDUP_KEY_CONSTRAINT)

        return RepositoryError(f"integrity error on {constraint or 'unknown constraint'}: {error.orig}")

    def get_by_short_code(self, short_code: str) -> Optional[URLEntity]:
        with self._session() as session:
            row = session.query(URL).filter(URL.short_code == short_code).first()
            return URLEntity.model_validate(row) if row else None

    def get_by_owner_and_url(self, original_url: str, owner_id: int) -> Optional[URLEntity]:
        now = utcnow()
        with self._session() as session:
            row = session.query(URL).filter(
                URL.owner_id == owner_id,
                URL.original_url == original_url,
                URL.deleted_at.is_(None)
            ).order_by(URL.created_at.desc()).first()

            if row is None:
                return None

            entity = URLEntity.model_validate(row)
            if entity.is_live(now):
                return entity

            self._tombstone(session, row, now)
            return None

    def _tombstone(self, session: Session, row: URL, now: datetime):
        # Opportunistic: failure only means the next insert for this pair
        # hits the dedup index and is reported as a persist failure
        try:
            row.is_active = False
            row.deleted_at = now
            row.updated_at = now
            session.commit()
            logger.info("Tombstoned stale URL %s for owner %s", row.short_code, row.owner_id)
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning("Failed to tombstone stale URL %s: %s", row.short_code, e)

    def update(self, entity: URLEntity) -> URLEntity:
        with self._session() as session:
            row = session.query(URL).filter(
                URL.short_code == entity.short_code,
                URL.is_active == True,
                URL.deleted_at.is_(None)
            ).first()
            if row is None:
                raise NotFoundError(f"URL {entity.short_code} not found or not active")

            row.expires_at = entity.expires_at
            row.url_metadata = entity.url_metadata
            row.updated_at = utcnow()
            session.commit()
            return URLEntity.model_validate(row)

    def soft_delete(self, short_code: str) -> None:
        now = utcnow()
        with self._session() as session:
            affected = session.query(URL).filter(
                URL.short_code == short_code,
                URL.is_active == True,
                URL.deleted_at.is_(None)
            ).update(
                {URL.is_active: False, URL.deleted_at: now, URL.updated_at: now},
                synchronize_session=False
            )
            session.commit()

        if affected == 0:
            raise NotFoundError(f"URL {short_code} not found or not active")

    def increment_click_count(self, short_code: str) -> None:
        with self._session() as session:
            affected = session.query(URL).filter(
                URL.short_code == short_code,
                URL.is_active == True,
                URL.deleted_at.is_(None)
            ).update(
                {URL.click_count: URL.click_count + 1},
                synchronize_session=False
            )
            session.commit()

        if affected == 0:
            raise NotFoundError(f"URL {short_code} not found or not active")

    def list_by_owner(self, owner_id: int, limit: int, offset: int) -> List[URLEntity]:
        now = utcnow()
        with self._session() as session:
            rows = session.query(URL).filter(
                URL.owner_id == owner_id,
                URL.is_active == True,
                URL.deleted_at.is_(None),
                or_(URL.expires_at.is_(None), URL.expires_at > now)
            ).order_by(
                URL.created_at.desc(), URL.id.desc()
            ).offset(offset).limit(limit).all()
            return [URLEntity.model_validate(row) for row in rows]


class InMemoryURLRepository(URLRepository):
    """
    In-memory implementation using Python dicts.

    Enforces the same uniqueness rules as the SQL schema under a lock, so it
    behaves like the real store under concurrent callers.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._rows: Dict[int, URLEntity] = {}
        self._next_id = 1

    def _find_code(self, short_code: str) -> Optional[URLEntity]:
        for row in self._rows.values():
            if row.short_code == short_code:
                return row
        return None

    def _find_pair(self, original_url: str, owner_id: int) -> Optional[URLEntity]:
        matches = [
            row for row in self._rows.values()
            if row.owner_id == owner_id
            and row.original_url == original_url
            and row.deleted_at is None
        ]
        return max(matches, key=lambda r: r.created_at) if matches else None

    def _live_row(self, short_code: str) -> URLEntity:
        row = self._find_code(short_code)
        if row is None or not row.is_active or row.deleted_at is not None:
            raise NotFoundError(f"URL {short_code} not found or not active")
        return row

    def create(self, entity: URLEntity) -> URLEntity:
        now = utcnow()
        with self._lock:
            if self._find_code(entity.short_code) is not None:
                raise UniqueViolation(ConstraintKind.SHORT_CODE, SHORT_CODE_CONSTRAINT)
            if self._find_pair(entity.original_url, entity.owner_id) is not None:
                raise UniqueViolation(ConstraintKind.DEDUP_KEY, DEDUP_KEY_CONSTRAINT)

            row = entity.model_copy(update={
                "id": self._next_id,
                "created_at": entity.created_at or now,
                "updated_at": now,
                "click_count": 0,
                "is_active": True,
                "deleted_at": None,
            }, deep=True)
            self._rows[row.id] = row
            self._next_id += 1
            return row.model_copy(deep=True)

    def get_by_short_code(self, short_code: str) -> Optional[URLEntity]:
        with self._lock:
            row = self._find_code(short_code)
            return row.model_copy(deep=True) if row else None

    def get_by_owner_and_url(self, original_url: str, owner_id: int) -> Optional[URLEntity]:
        now = utcnow()
        with self._lock:
            row = self._find_pair(original_url, owner_id)
            if row is None:
                return None
            if row.is_live(now):
                return row.model_copy(deep=True)

            row.is_active = False
            row.deleted_at = now
            row.updated_at = now
            logger.info("Tombstoned stale URL %s for owner %s", row.short_code, owner_id)
            return None

    def update(self, entity: URLEntity) -> URLEntity:
        with self._lock:
            row = self._live_row(entity.short_code)
            row.expires_at = entity.expires_at
            row.url_metadata = entity.url_metadata
            row.updated_at = utcnow()
            return row.model_copy(deep=True)

    def soft_delete(self, short_code: str) -> None:
        now = utcnow()
        with self._lock:
            row = self._live_row(short_code)
            row.is_active = False
            row.deleted_at = now
            row.updated_at = now

    def increment_click_count(self, short_code: str) -> None:
        with self._lock:
            self._live_row(short_code).click_count += 1

    def list_by_owner(self, owner_id: int, limit: int, offset: int) -> List[URLEntity]:
        now = utcnow()
        with self._lock:
            rows = [
                row for row in self._rows.values()
                if row.owner_id == owner_id and row.is_live(now)
            ]
            rows.sort(key=lambda r: (r.created_at, r.id), reverse=True)
            return [row.model_copy(deep=True) for row in rows[offset:offset + limit]]

    def count(self) -> int:
        """Number of stored rows, tombstoned ones included"""
        with self._lock:
            return len(self._rows)
