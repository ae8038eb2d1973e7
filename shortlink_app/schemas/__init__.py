from .url import (
    URLEntity,
    URLCreate,
    URLUpdate,
    URLResponse,
    URLList,
    URLValidateRequest,
    URLValidateResponse,
)

__all__ = [
    "URLEntity",
    "URLCreate",
    "URLUpdate",
    "URLResponse",
    "URLList",
    "URLValidateRequest",
    "URLValidateResponse",
]
