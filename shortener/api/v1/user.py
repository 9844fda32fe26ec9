from typing import List

from fastapi import APIRouter, Body, Depends, Response, status
from shortener.schemas.url import UserURL, build_short_url
from shortener.services.url_service import URLService
from shortener.dependencies import get_url_service, require_owner_id

router = APIRouter(prefix="/user", tags=["user"])


@router.get("/urls", response_model=List[UserURL])
def get_user_urls(
    owner_id: str = Depends(require_owner_id),
    url_service: URLService = Depends(get_url_service)
):
    """List the caller's live short URLs (204 if there are none)"""
    urls = url_service.get_user_urls(owner_id)
    if not urls:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return [
        UserURL(short_url=build_short_url(short_id), original_url=original_url)
        for short_id, original_url in urls.items()
    ]


@router.delete("/urls", status_code=status.HTTP_202_ACCEPTED)
async def delete_user_urls(
    short_ids: List[str] = Body(..., min_length=1),
    owner_id: str = Depends(require_owner_id),
    url_service: URLService = Depends(get_url_service)
):
    """
    Queue deletion of the caller's short URLs.

    Returns 202 right away; the delete worker applies it later. IDs the
    caller doesn't own are ignored. 503 if the delete queue is full.
    """
    await url_service.request_delete(owner_id, short_ids)
    return Response(status_code=status.HTTP_202_ACCEPTED)
