"""Exceptions raised by the shortlink core.

Classes:
    ShortlinkError:
        Base class for every error raised by this package.

    ValidationError, UnsafeURLError:
        Client-caused failures while creating a URL.

    NotFoundError:
        Raised by mutating operations (delete, update, click increment) when the
        short code does not name a live entity. Reads return ``None`` instead.

    RepositoryError, DedupCheckError, PersistError, UniqueViolation:
        Persistent store failures.

    GenerationError, GenerationExhaustedError, CreationExhaustedError:
        Internal failures of the short code pipeline.

    CacheError, EventPublishError:
        Failures of best-effort collaborators. Callers log them and move on.
"""

from enum import Enum
from typing import Optional


class ShortlinkError(Exception):
    """Generic base class for shortlink exceptions."""

    pass


class ValidationError(ShortlinkError):
    """The submitted URL failed syntactic or policy validation."""

    pass


class UnsafeURLError(ShortlinkError):
    """The safety check rejected the submitted URL."""

    pass


class NotFoundError(ShortlinkError):
    """No live entity exists for the given short code."""

    pass


class RepositoryError(ShortlinkError):
    """Storage or transport failure in the persistent store."""

    pass


class DedupCheckError(RepositoryError):
    """The owner-scoped dedup lookup could not be completed."""

    pass


class PersistError(RepositoryError):
    """A create failed for a reason other than a short code collision."""

    pass


class ConstraintKind(Enum):
    """Which uniqueness rule a failed insert violated."""
    SHORT_CODE = "short_code"
    DEDUP_KEY = "dedup_key"


class UniqueViolation(RepositoryError):
    """
    A uniqueness constraint rejected an insert.

    Attributes:
        kind: SHORT_CODE or DEDUP_KEY
        constraint: Name of the violated constraint as reported by the store
    """

    def __init__(self, kind: ConstraintKind, constraint: Optional[str] = None):
        self.kind = kind
        self.constraint = constraint
        super().__init__(f"unique violation on {kind.value} ({constraint})")


class GenerationError(ShortlinkError):
    """The short code generator could not produce a candidate."""

    pass


class GenerationExhaustedError(ShortlinkError):
    """Every probed candidate code was already taken."""

    pass


class CreationExhaustedError(ShortlinkError):
    """Create retry budget spent and the fallback read found nothing."""

    pass


class CacheError(ShortlinkError):
    """Cache backend failure. Never fatal to callers."""

    pass


class EventPublishError(ShortlinkError):
    """Event sink failure. Never fatal to callers."""

    pass
