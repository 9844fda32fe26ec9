"""
Factory for creating queue instances.
Simple, clean factory with singleton caching.
"""

import logging
from enum import Enum
from typing import Optional

from .strategies import QueueStrategy, RedisListQueue, InMemoryQueue
from shortener.config import settings
from shortener.logging_config import get_logger


class QueueBackend(Enum):
    """Available queue backends"""
    REDIS = "redis"
    MEMORY = "memory"


class QueueFactory:
    """
    Simple factory for creating queue instances.

    Gets configuration from settings (not passed as parameters).
    """

    _instance: QueueStrategy = None  # Single cached instance

    @classmethod
    def create(cls, backend: QueueBackend, logger: Optional[logging.Logger] = None) -> QueueStrategy:
        """
        Create or return cached queue instance.

        Args:
            backend: Type of queue backend (from enum)
            logger: Application logger handed down to the queue

        Returns:
            Singleton queue instance
        """
        # Return cached instance if exists
        if cls._instance is not None:
            return cls._instance

        logger = logger or get_logger()

        if backend == QueueBackend.REDIS:
            import redis

            try:
                redis_client = redis.from_url(
                    settings.redis_url,
                    decode_responses=True,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                )

                # Test connection immediately
                redis_client.ping()

                cls._instance = RedisListQueue(
                    redis_client,
                    capacity=settings.delete_queue_capacity,
                    logger=logger
                )
                logger.info("✅ Redis delete queue initialized")

            except redis.RedisError as e:
                logger.warning("⚠️  Redis connection failed: %s", e)
                logger.warning("⚠️  Falling back to in-memory delete queue")
                cls._instance = InMemoryQueue(capacity=settings.delete_queue_capacity, logger=logger)

        elif backend == QueueBackend.MEMORY:
            cls._instance = InMemoryQueue(capacity=settings.delete_queue_capacity, logger=logger)
            logger.info("✅ In-memory delete queue initialized")

        else:
            raise ValueError(f"Unknown queue backend: {backend}")

        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Clear cached instance (for testing)"""
        cls._instance = None
