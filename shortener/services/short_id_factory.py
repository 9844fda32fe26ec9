"""
Factory for creating short ID generation strategies.
Uses caching to avoid creating multiple instances.
"""

from enum import Enum
from shortener.services.short_id_strategies import (
    ShortIDStrategy,
    RandomShortIDStrategy,
    AlphanumericShortIDStrategy
)
from shortener.config import settings


class ShortIDStrategyType(Enum):
    """Available short ID generation strategies"""
    RANDOM = "random"
    ALPHANUMERIC = "alphanumeric"


class ShortIDFactory:
    """Factory for creating short ID generation strategies with caching"""

    _instances = {}  # Cache for strategy instances

    @classmethod
    def create_strategy(
        cls,
        strategy_type: ShortIDStrategyType = None
    ) -> ShortIDStrategy:
        """
        Create or return cached short ID generation strategy.

        Args:
            strategy_type: Type of strategy to create.
                          If None, uses value from settings.

        Returns:
            A cached instance of a ShortIDStrategy

        Raises:
            ValueError: If strategy_type is unknown
        """
        # Use default from settings if not specified
        if strategy_type is None:
            strategy_type = ShortIDStrategyType(settings.short_id_strategy)

        # Return cached instance if exists
        if strategy_type in cls._instances:
            return cls._instances[strategy_type]

        if strategy_type == ShortIDStrategyType.RANDOM:
            instance = RandomShortIDStrategy(num_bytes=settings.short_id_bytes)
        elif strategy_type == ShortIDStrategyType.ALPHANUMERIC:
            instance = AlphanumericShortIDStrategy(length=settings.short_id_length)
        else:
            raise ValueError(f"Unknown strategy type: {strategy_type}")

        cls._instances[strategy_type] = instance
        return instance
