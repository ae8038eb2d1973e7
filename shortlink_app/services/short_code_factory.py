"""
Picks the short code generator configured for this process.
"""

from enum import Enum
from typing import Dict, Optional

from shortlink_app.services.short_code_strategies import (
    ShortCodeStrategy,
    RandomShortCodeStrategy,
    SnowflakeShortCodeStrategy
)
from shortlink_app.config import settings


class ShortCodeStrategyType(Enum):
    """Available short code generation strategies"""
    RANDOM = "random"
    SNOWFLAKE = "snowflake"


class ShortCodeFactory:
    """
    One generator per strategy type per process.

    The snowflake generator keeps (millisecond, sequence) state, so handing
    out a second instance could repeat ids.
    """

    _instances: Dict[ShortCodeStrategyType, ShortCodeStrategy] = {}

    @classmethod
    def create_strategy(
        cls,
        strategy_type: Optional[ShortCodeStrategyType] = None
    ) -> ShortCodeStrategy:
        """
        Args:
            strategy_type: Defaults to settings.short_code_strategy

        Raises:
            ValueError: If the strategy name is unknown
        """
        if strategy_type is None:
            strategy_type = ShortCodeStrategyType(settings.short_code_strategy)

        instance = cls._instances.get(strategy_type)
        if instance is not None:
            return instance

        if strategy_type == ShortCodeStrategyType.RANDOM:
            instance = RandomShortCodeStrategy(length=settings.short_code_length)
        elif strategy_type == ShortCodeStrategyType.SNOWFLAKE:
            instance = SnowflakeShortCodeStrategy(instance_id=settings.instance_id)
        else:
            raise ValueError(f"Unknown strategy type: {strategy_type}")

        cls._instances[strategy_type] = instance
        return instance

    @classmethod
    def clear_instances(cls):
        cls._instances.clear()
