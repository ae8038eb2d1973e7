import logging

from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.responses import RedirectResponse
from shortlink_app.exceptions import ShortlinkError
from shortlink_app.services.url_service import URLService
from shortlink_app.dependencies import get_url_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["redirect"])


@router.get("/{short_code}")
async def redirect_to_original_url(
    short_code: str,
    request: Request,
    url_service: URLService = Depends(get_url_service)
):
    """
    Redirect to the original URL.

    Flow:
    1. Resolve the code (entity cache, then store)
    2. Hand the click to the click recorder
    3. Redirect immediately - the click is counted after the response
    """
    try:
        original_url = await url_service.redirect_and_record_click(
            short_code,
            user_agent=request.headers.get("user-agent"),
            ip_address=request.client.host if request.client else None,
            referrer=request.headers.get("referer"),
        )
    except ShortlinkError as exc:
        logger.error("Redirect for %s failed: %r", short_code, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error"
        ) from exc

    if not original_url:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Short URL not found or inactive"
        )

    return RedirectResponse(url=original_url, status_code=status.HTTP_302_FOUND)
