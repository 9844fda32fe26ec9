"""
Delete queue module for URL shortener.
Implements Strategy Pattern for flexible bounded queue backends.
"""

from .models import DeleteRequest
from .strategies import QueueStrategy, RedisListQueue, InMemoryQueue
from .factory import QueueFactory, QueueBackend

__all__ = [
    "DeleteRequest",
    "QueueStrategy",
    "RedisListQueue",
    "InMemoryQueue",
    "QueueFactory",
    "QueueBackend",
]
