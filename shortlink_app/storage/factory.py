"""
Factory for creating URL repository instances.
Simple, clean factory with singleton caching.
"""

import logging
from enum import Enum

from .strategies import URLRepository, SQLAlchemyURLRepository, InMemoryURLRepository
from shortlink_app.database.connection import SessionLocal

logger = logging.getLogger(__name__)


class StorageBackend(Enum):
    """Available URL store backends"""
    SQLALCHEMY = "sqlalchemy"
    MEMORY = "memory"


class RepositoryFactory:
    """
    Simple factory for creating URL repository instances.

    Gets configuration from settings (not passed as parameters).
    """

    _instance: URLRepository = None  # Single cached instance

    @classmethod
    def create(cls, backend: StorageBackend) -> URLRepository:
        """
        Create or return cached repository instance.

        Args:
            backend: Type of storage backend (from enum)

        Returns:
            Singleton repository instance
        """
        if cls._instance is not None:
            return cls._instance

        if backend == StorageBackend.SQLALCHEMY:
            cls._instance = SQLAlchemyURLRepository(SessionLocal)
            logger.info("SQLAlchemy URL repository initialized")

        elif backend == StorageBackend.MEMORY:
            cls._instance = InMemoryURLRepository()
            logger.info("In-memory URL repository initialized")

        else:
            raise ValueError(f"Unknown storage backend: {backend}")

        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Clear cached instance (for testing)"""
        cls._instance = None
