"""
Database models for URL shortener.
"""

from .url import URL

__all__ = ["URL"]
