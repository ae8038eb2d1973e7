import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from shortlink_app.exceptions import NotFoundError, ShortlinkError, UnsafeURLError, ValidationError
from shortlink_app.schemas.url import (
    URLCreate,
    URLList,
    URLResponse,
    URLUpdate,
    URLValidateRequest,
    URLValidateResponse,
)
from shortlink_app.services.url_service import URLService
from shortlink_app.dependencies import get_url_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["urls"])


def internal_error(operation: str, exc: ShortlinkError) -> HTTPException:
    """Store details stay in the log, not in the response"""
    logger.error("%s failed: %r", operation, exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error"
    )


@router.post("/urls", response_model=URLResponse, status_code=status.HTTP_201_CREATED)
async def create_short_url(
    url_data: URLCreate,
    url_service: URLService = Depends(get_url_service)
):
    """Create a short URL, or return the owner's existing one for the same URL"""
    try:
        return await url_service.create_url(url_data)
    except (ValidationError, UnsafeURLError) as exc:
        logger.info("Rejected URL for owner %s: %s", url_data.owner_id, exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ShortlinkError as exc:
        raise internal_error("create_url", exc) from exc


@router.post("/urls/validate", response_model=URLValidateResponse)
async def validate_url(
    payload: URLValidateRequest,
    url_service: URLService = Depends(get_url_service)
):
    """Check a URL against the validation policy without shortening it"""
    valid, reason = url_service.validate_url(payload.url)
    return URLValidateResponse(valid=valid, reason=reason)


@router.get("/urls/{short_code}", response_model=URLResponse)
async def get_url_info(
    short_code: str,
    url_service: URLService = Depends(get_url_service)
):
    """Get information about a live short URL"""
    try:
        url = await url_service.get_url(short_code)
    except ShortlinkError as exc:
        raise internal_error("get_url", exc) from exc
    if not url:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Short URL not found"
        )
    return url


@router.patch("/urls/{short_code}", response_model=URLResponse)
async def update_url(
    short_code: str,
    update: URLUpdate,
    url_service: URLService = Depends(get_url_service)
):
    """Change expiry or metadata of a live short URL"""
    try:
        return await url_service.update_url(short_code, update)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Short URL not found") from exc
    except ShortlinkError as exc:
        raise internal_error("update_url", exc) from exc


@router.delete("/urls/{short_code}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_url(
    short_code: str,
    url_service: URLService = Depends(get_url_service)
):
    """Soft delete a short URL"""
    try:
        await url_service.delete_url(short_code)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Short URL not found") from exc
    except ShortlinkError as exc:
        raise internal_error("delete_url", exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/users/{owner_id}/urls", response_model=URLList)
async def list_owner_urls(
    owner_id: int,
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    url_service: URLService = Depends(get_url_service)
):
    """List an owner's live short URLs, newest first"""
    try:
        urls = await url_service.list_urls(owner_id, limit=limit, offset=offset)
    except ShortlinkError as exc:
        raise internal_error("list_urls", exc) from exc
    return URLList(urls=urls, limit=limit, offset=offset, count=len(urls))
