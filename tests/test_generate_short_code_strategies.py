"""
Tests for short code generation strategies.
"""
import string

import pytest

from shortlink_app.exceptions import GenerationError
from shortlink_app.services.short_code_strategies import (
    BASE62_CHARS,
    RandomShortCodeStrategy,
    SnowflakeShortCodeStrategy,
    base62_encode,
    clamp_length,
)
from shortlink_app.services.short_code_factory import (
    ShortCodeFactory,
    ShortCodeStrategyType
)


class TestRandomStrategy:
    """Test random generation strategy"""

    def test_generates_default_length(self):
        strategy = RandomShortCodeStrategy()

        code = strategy.generate()

        assert len(code) == 7
        assert all(c in BASE62_CHARS for c in code)

    def test_length_is_clamped(self):
        strategy = RandomShortCodeStrategy()

        assert len(strategy.generate(1)) == 4
        assert len(strategy.generate(50)) == 12
        assert len(RandomShortCodeStrategy(length=2).generate()) == 4

    def test_codes_differ(self):
        """62^8 possible codes: 1000 draws should not repeat"""
        strategy = RandomShortCodeStrategy(length=8)

        codes = {strategy.generate() for _ in range(1000)}

        assert len(codes) == 1000

    def test_rejects_small_alphabet(self):
        with pytest.raises(ValueError):
            RandomShortCodeStrategy(alphabet=string.digits)

    def test_entropy_failure_raises_generation_error(self, monkeypatch):
        def broken_choice(seq):
            raise OSError("no entropy")

        monkeypatch.setattr("shortlink_app.services.short_code_strategies.secrets.choice", broken_choice)

        with pytest.raises(GenerationError):
            RandomShortCodeStrategy().generate()


class TestSnowflakeStrategy:
    """Test sequential Snowflake strategy"""

    def test_ids_increase_within_one_millisecond(self):
        strategy = SnowflakeShortCodeStrategy(instance_id=1, clock=lambda: 1700000000000)

        first = strategy.next_id()
        second = strategy.next_id()

        assert second == first + 1

    def test_instance_id_partitions_ids(self):
        clock = lambda: 1700000000000
        a = SnowflakeShortCodeStrategy(instance_id=1, clock=clock)
        b = SnowflakeShortCodeStrategy(instance_id=2, clock=clock)

        assert a.generate() != b.generate()

    def test_clock_regression_waits_instead_of_reusing(self):
        ticks = iter([1700000000005, 1700000000001, 1700000000003, 1700000000005, 1700000000006])
        strategy = SnowflakeShortCodeStrategy(instance_id=0, clock=lambda: next(ticks))

        first = strategy.next_id()
        second = strategy.next_id()

        assert second > first

    def test_codes_are_unique(self):
        strategy = SnowflakeShortCodeStrategy(instance_id=3)

        codes = [strategy.generate() for _ in range(2000)]

        assert len(set(codes)) == len(codes)

    def test_too_short_length_fails_instead_of_truncating(self):
        strategy = SnowflakeShortCodeStrategy(instance_id=0, clock=lambda: 1700000000000)

        with pytest.raises(GenerationError):
            strategy.generate(length=4)

    def test_invalid_instance_id(self):
        with pytest.raises(ValueError):
            SnowflakeShortCodeStrategy(instance_id=1024)


class TestHelpers:
    def test_base62_encode(self):
        assert base62_encode(0) == "0"
        assert base62_encode(61) == "Z"
        assert base62_encode(62) == "10"

    def test_clamp_length(self):
        assert clamp_length(3) == 4
        assert clamp_length(7) == 7
        assert clamp_length(13) == 12


class TestShortCodeFactory:
    """Test strategy factory"""

    def setup_method(self):
        ShortCodeFactory.clear_instances()

    def test_creates_random_strategy(self):
        strategy = ShortCodeFactory.create_strategy(ShortCodeStrategyType.RANDOM)
        assert isinstance(strategy, RandomShortCodeStrategy)

    def test_creates_snowflake_strategy(self):
        strategy = ShortCodeFactory.create_strategy(ShortCodeStrategyType.SNOWFLAKE)
        assert isinstance(strategy, SnowflakeShortCodeStrategy)

    def test_returns_cached_instance(self):
        first = ShortCodeFactory.create_strategy(ShortCodeStrategyType.SNOWFLAKE)
        second = ShortCodeFactory.create_strategy(ShortCodeStrategyType.SNOWFLAKE)
        assert first is second

    def test_creates_default_from_settings(self):
        strategy = ShortCodeFactory.create_strategy()
        # Random by default
        assert isinstance(strategy, RandomShortCodeStrategy)
