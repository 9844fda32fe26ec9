"""
Error classes for the URL shortener core.

Every error carries the HTTP status code the API layer answers with,
so routes never translate errors by hand. A lookup miss is not an
error: storage returns None for it.
"""

from typing import Optional


class ShortenerError(Exception):
    """
    Base error class.

    Attributes:
        status_code: HTTP status code (default: 500)
        message: Error message (default: "Internal server error")
    """
    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class AlreadyExistsError(ShortenerError):
    """409 A short ID or URL is already bound to something else."""
    status_code = 409
    message = "Already exists"


class ShortIDConflictError(AlreadyExistsError):
    """The short ID is already bound to a different URL."""

    def __init__(self, short_id: str):
        self.short_id = short_id
        super().__init__(f"Short ID {short_id!r} already exists")


class URLConflictError(AlreadyExistsError):
    """The URL is already bound to a different short ID."""

    def __init__(self, original_url: str, existing_short_id: str):
        self.original_url = original_url
        self.existing_short_id = existing_short_id
        super().__init__(f"URL {original_url!r} already has short ID {existing_short_id!r}")


class ShortIDGenerationError(ShortenerError):
    """500 The entropy source failed."""
    message = "Failed to generate short ID"


class IDGenerationExhaustedError(ShortenerError):
    """500 No free short ID was found within the retry budget."""
    message = "Failed to generate unique short ID"


class PersistenceError(ShortenerError):
    """500 Disk or database I/O failed."""
    message = "Storage error"


class StorageCorruptedError(PersistenceError):
    """The append-only log could not be replayed."""
    message = "Storage file is corrupted"


class UnauthorizedError(ShortenerError):
    """401 Missing owner identity."""
    status_code = 401
    message = "Unauthorized"


class URLGoneError(ShortenerError):
    """410 The short link was deleted."""
    status_code = 410
    message = "Short URL has been deleted"


class DeleteQueueFullError(ShortenerError):
    """503 The delete queue refused a request."""
    status_code = 503
    message = "Delete queue is full, try again later"
