"""
Cache key schema and TTL rules shared by all cache backends.
"""

import hashlib
from datetime import datetime
from typing import Optional

from shortlink_app.schemas.url import URLEntity, utcnow

URL_PREFIX = "url:"
RESPONSE_PREFIX = "response:"

DEFAULT_ENTITY_TTL = 24 * 60 * 60
DEFAULT_RESPONSE_TTL = 5 * 60


def entity_key(short_code: str) -> str:
    return f"{URL_PREFIX}{short_code}"


def response_key(dedup_key: str) -> str:
    return f"{RESPONSE_PREFIX}{dedup_key}"


def dedup_key(original_url: str, owner_id: int) -> str:
    """Stable key for an (original URL, owner) pair"""
    return hashlib.sha256(f"{original_url}:{owner_id}".encode("utf-8")).hexdigest()


def entity_ttl(
    entity: URLEntity,
    default: int = DEFAULT_ENTITY_TTL,
    now: Optional[datetime] = None
) -> int:
    """
    Seconds an entity may stay cached.

    Time left until expires_at when set (0 once past), otherwise default.
    """
    if entity.expires_at is None:
        return default
    remaining = (entity.expires_at - (now or utcnow())).total_seconds()
    return max(0, int(remaining))
