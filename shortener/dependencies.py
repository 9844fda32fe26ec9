"""
FastAPI dependencies for dependency injection.

This module provides singleton instances of the logger, the URL storage
backend and the delete queue, plus the caller identity, and injects them
into services and routes.

Pattern: Dependency Injection
- The storage backend is built once from settings and shared
- Easy to test (clear the caches or inject other instances)
"""

import logging
import uuid
from functools import lru_cache

from fastapi import Depends, Request, Response

from shortener.config import settings
from shortener.exceptions import UnauthorizedError
from shortener.logging_config import setup_logging
from shortener.queue.factory import QueueFactory, QueueBackend
from shortener.queue.strategies import QueueStrategy
from shortener.storage.factory import StorageFactory, StorageBackend
from shortener.storage.strategies import URLStorageStrategy

USER_ID_HEADER = "X-User-ID"
USER_ID_COOKIE = "user_id"


@lru_cache()
def get_app_logger() -> logging.Logger:
    """
    Get the application logger (configured once).

    Every component receives this instance and derives its own child.
    """
    return setup_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        json_format=settings.log_json,
    )


@lru_cache()
def get_storage() -> URLStorageStrategy:
    """
    Get URL storage instance (singleton).

    Factory gets config from settings internally.
    @lru_cache ensures this is called only once.

    Returns:
        URLStorageStrategy instance based on settings
    """
    backend = StorageBackend(settings.storage_backend)
    return StorageFactory.create(backend, logger=get_app_logger())


@lru_cache()
def get_queue() -> QueueStrategy:
    """
    Get delete queue instance (singleton).

    Factory gets config from settings internally.
    @lru_cache ensures this is called only once.

    Returns:
        QueueStrategy instance based on settings
    """
    backend = QueueBackend(settings.delete_queue_backend)
    return QueueFactory.create(backend, logger=get_app_logger())


def get_url_service(
    storage: URLStorageStrategy = Depends(get_storage),
    queue: QueueStrategy = Depends(get_queue),
    logger: logging.Logger = Depends(get_app_logger)
):
    """
    Get URLService with all dependencies injected.

    - Controller depends on service
    - Service depends on infrastructure (storage, queue, logger)
    """
    from shortener.services.url_service import URLService
    return URLService(storage=storage, queue=queue, logger=logger)


def _read_owner_id(request: Request) -> str:
    return request.headers.get(USER_ID_HEADER) or request.cookies.get(USER_ID_COOKIE) or ""


def get_owner_id(request: Request, response: Response) -> str:
    """
    Identity of the caller for create requests.

    A caller without one gets a fresh anonymous ID, returned in a cookie
    so follow-up requests are attributed to the same owner.
    """
    owner_id = _read_owner_id(request)
    if not owner_id:
        owner_id = str(uuid.uuid4())
        response.set_cookie(USER_ID_COOKIE, owner_id, path="/")
    return owner_id


def require_owner_id(request: Request) -> str:
    """Identity of the caller for list/delete requests; 401 without one"""
    owner_id = _read_owner_id(request)
    if not owner_id:
        raise UnauthorizedError("Missing user identity")
    return owner_id
