"""
Data models for published events.
"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

TOPIC_URL_CREATED = "url.created"
TOPIC_URL_UPDATED = "url.updated"
TOPIC_URL_CLICKED = "url.clicked"


class ClickEvent(BaseModel):
    """
    Event model for URL click tracking.

    Published after a redirect has already been answered.
    """

    short_code: str = Field(..., description="The short code that was accessed")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the click occurred"
    )

    # Request metadata
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="User agent string")
    referrer: Optional[str] = Field(None, description="HTTP referer")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "short_code": "abc1234",
                "timestamp": "2025-10-29T10:30:00Z",
                "ip_address": "192.168.1.1",
                "user_agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0",
                "referrer": "https://twitter.com"
            }
        }
    )


class EventEnvelope(BaseModel):
    """Wire format shared by every topic"""

    event_type: str
    timestamp: datetime
    data: Dict[str, Any]
