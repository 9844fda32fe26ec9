"""
Factory for creating URL storage instances.
Simple, clean factory with singleton caching.
"""

import logging
from enum import Enum
from typing import Optional

from .strategies import URLStorageStrategy, InMemoryURLStorage, FileURLStorage, DatabaseURLStorage
from shortener.config import settings
from shortener.logging_config import get_logger


class StorageBackend(Enum):
    """Available URL storage backends"""
    MEMORY = "memory"
    FILE = "file"
    DATABASE = "database"


class StorageFactory:
    """
    Simple factory for creating URL storage instances.

    The backend is chosen once at startup and the same instance is
    shared by every request afterwards. Gets configuration from settings
    (not passed as parameters).
    """

    _instance: URLStorageStrategy = None  # Single cached instance

    @classmethod
    def create(
        cls,
        backend: StorageBackend,
        logger: Optional[logging.Logger] = None
    ) -> URLStorageStrategy:
        """
        Create or return cached storage instance.

        Args:
            backend: Type of storage backend (from enum)
            logger: Application logger handed down to the backend

        Returns:
            Singleton storage instance
        """
        # Return cached instance if exists
        if cls._instance is not None:
            return cls._instance

        logger = logger or get_logger()

        if backend == StorageBackend.MEMORY:
            cls._instance = InMemoryURLStorage(
                hide_deleted=settings.hide_deleted_urls,
                logger=logger
            )

        elif backend == StorageBackend.FILE:
            cls._instance = FileURLStorage(
                settings.file_storage_path,
                hide_deleted=settings.hide_deleted_urls,
                logger=logger
            )

        elif backend == StorageBackend.DATABASE:
            cls._instance = DatabaseURLStorage(
                settings.database_url,
                pool_size=settings.database_pool_size,
                hide_deleted=settings.hide_deleted_urls,
                logger=logger
            )

        else:
            raise ValueError(f"Unknown storage backend: {backend}")

        logger.info("✅ %s URL storage initialized", backend.value)
        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Clear cached instance (for testing)"""
        if cls._instance is not None:
            cls._instance.close()
        cls._instance = None
