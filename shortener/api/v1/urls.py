from typing import List

from fastapi import APIRouter, Depends, Response, status
from shortener.schemas.url import URLCreate, URLResponse, BatchURLItem, BatchURLResult, build_short_url
from shortener.services.url_service import URLService
from shortener.dependencies import get_url_service, get_owner_id

router = APIRouter(prefix="/urls", tags=["urls"])


@router.post("/", response_model=URLResponse, status_code=status.HTTP_201_CREATED)
def create_short_url(
    url_data: URLCreate,
    response: Response,
    owner_id: str = Depends(get_owner_id),
    url_service: URLService = Depends(get_url_service)
):
    """Create a short URL; 200 instead of 201 if the URL was already shortened"""
    long_url = str(url_data.long_url)
    result = url_service.create_short_url(owner_id, long_url)
    if result.existed:
        response.status_code = status.HTTP_200_OK
    return URLResponse(short_id=result.short_id, long_url=long_url, existed=result.existed)


@router.post("/batch", response_model=List[BatchURLResult], status_code=status.HTTP_201_CREATED)
def create_short_urls_batch(
    items: List[BatchURLItem],
    owner_id: str = Depends(get_owner_id),
    url_service: URLService = Depends(get_url_service)
):
    """Shorten many URLs at once, echoing each correlation_id"""
    results = url_service.create_short_urls_batch(
        owner_id, [str(item.original_url) for item in items]
    )
    return [
        BatchURLResult(
            correlation_id=item.correlation_id,
            short_url=build_short_url(results[str(item.original_url)].short_id),
        )
        for item in items
    ]
