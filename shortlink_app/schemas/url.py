from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class URLEntity(BaseModel):
    """
    Plain value copy of a URL row.

    Repositories return this instead of ORM instances so the same object can
    travel through the cache, the event sink and detached click jobs without
    a live database session.
    """
    id: Optional[int] = None
    short_code: str
    original_url: str
    owner_id: int
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    click_count: int = 0
    is_active: bool = True
    url_metadata: Optional[Dict[str, Any]] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("created_at", "expires_at", "updated_at", "deleted_at")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # SQLite hands back naive datetimes; everything is stored in UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return self.expires_at is not None and self.expires_at <= now

    def is_live(self, now: Optional[datetime] = None) -> bool:
        """active, not tombstoned, not expired"""
        return self.is_active and self.deleted_at is None and not self.is_expired(now)


class URLCreate(BaseModel):
    url: str = Field(..., description="The original URL to be shortened")
    owner_id: int = Field(..., gt=0, description="Owner of the mapping")
    expires_in_seconds: Optional[int] = Field(
        None, description="Lifetime in seconds; zero or negative means no expiry"
    )
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("url")
    @classmethod
    def _strip_url(cls, value: str) -> str:
        # One normalized value is validated, hashed into the dedup key and stored
        return value.strip()


class URLUpdate(BaseModel):
    expires_in_seconds: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None


class URLResponse(BaseModel):
    """Boundary-stable response shape, also what the response cache stores"""
    short_code: str
    short_url: str
    original_url: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    click_count: int = 0


class URLList(BaseModel):
    urls: List[URLResponse]
    limit: int
    offset: int
    count: int


class URLValidateRequest(BaseModel):
    url: str

    @field_validator("url")
    @classmethod
    def _strip_url(cls, value: str) -> str:
        return value.strip()


class URLValidateResponse(BaseModel):
    valid: bool
    reason: Optional[str] = None
