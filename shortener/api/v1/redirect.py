from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse
from shortener.services.url_service import URLService
from shortener.dependencies import get_url_service

router = APIRouter(tags=["redirect"])


@router.get("/{short_id}")
def redirect_to_long_url(
    short_id: str,
    url_service: URLService = Depends(get_url_service)
):
    """
    Redirect to the original URL.

    404 for unknown IDs, 410 for deleted ones (raised by the service).
    """
    long_url = url_service.get_original_url(short_id)

    if not long_url:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Short URL not found"
        )

    return RedirectResponse(url=long_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
