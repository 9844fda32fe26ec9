"""
Short ID generation strategies for URL shortener.
Uses Strategy Pattern to allow different generation algorithms.

Generators are stateless and make no uniqueness promise: a candidate
may collide with a stored ID, and storage is what detects that.
"""

import base64
import secrets
import string
from abc import ABC, abstractmethod

from shortener.exceptions import ShortIDGenerationError


class ShortIDStrategy(ABC):
    """Abstract base class for short ID generation strategies"""

    @abstractmethod
    def generate(self) -> str:
        """
        Generate a candidate short ID.

        Returns:
            A URL-safe short ID string

        Raises:
            ShortIDGenerationError: If the entropy source fails
        """
        pass


class RandomShortIDStrategy(ShortIDStrategy):
    """
    Cryptographically random bytes encoded with the base64url alphabet.

    6 bytes give 8 characters and 48 bits of entropy. Padding is stripped
    so byte counts that are not a multiple of 3 never put '=' in a path.
    """

    def __init__(self, num_bytes: int = 6):
        if num_bytes < 1:
            raise ValueError("num_bytes must be positive")
        self.num_bytes = num_bytes

    def generate(self) -> str:
        try:
            raw = secrets.token_bytes(self.num_bytes)
        except (OSError, NotImplementedError) as e:
            raise ShortIDGenerationError(f"Failed to read random bytes: {e}") from e
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


class AlphanumericShortIDStrategy(ShortIDStrategy):
    """
    Random string over [a-zA-Z0-9].

    Pros: Readable, no '-' or '_' in links
    Cons: Less entropy per character than base64url
    """

    def __init__(self, length: int = 8):
        if length < 1:
            raise ValueError("length must be positive")
        self.length = length
        self.characters = string.ascii_letters + string.digits

    def generate(self) -> str:
        try:
            return ''.join(secrets.choice(self.characters) for _ in range(self.length))
        except (OSError, NotImplementedError) as e:
            raise ShortIDGenerationError(f"Failed to read random bytes: {e}") from e
