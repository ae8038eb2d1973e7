"""
URL storage module.

This module implements the Strategy Pattern for the persistent URL store,
the source of truth for short code mappings.
"""

from .strategies import URLRepository, SQLAlchemyURLRepository, InMemoryURLRepository
from .factory import RepositoryFactory, StorageBackend

__all__ = [
    "URLRepository",
    "SQLAlchemyURLRepository",
    "InMemoryURLRepository",
    "RepositoryFactory",
    "StorageBackend",
]
