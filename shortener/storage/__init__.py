"""
URL storage module.

This module implements the Strategy Pattern for pluggable persistence:
in-memory, append-only file, and relational database backends behind
one interface.
"""

from .models import URLRecord, URLLogEntry
from .strategies import URLStorageStrategy, InMemoryURLStorage, FileURLStorage, DatabaseURLStorage
from .factory import StorageFactory, StorageBackend

__all__ = [
    "URLRecord",
    "URLLogEntry",
    "URLStorageStrategy",
    "InMemoryURLStorage",
    "FileURLStorage",
    "DatabaseURLStorage",
    "StorageFactory",
    "StorageBackend",
]
