"""
Short code generation strategies for the shortlink service.
Uses Strategy Pattern to allow different generation algorithms.

A strategy only proposes candidates. Uniqueness is decided by the store at
insert time; the URL service retries on collision.
"""

import secrets
import string
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from shortlink_app.exceptions import GenerationError

MIN_LENGTH = 4
MAX_LENGTH = 12
DEFAULT_LENGTH = 7

BASE62_CHARS = string.digits + string.ascii_lowercase + string.ascii_uppercase


def clamp_length(length: int) -> int:
    """Keep code length inside the supported range"""
    return max(MIN_LENGTH, min(MAX_LENGTH, length))


def base62_encode(number: int) -> str:
    """
    Convert a non-negative integer to a Base62 string.

    Base62 uses: 0-9 (10) + a-z (26) + A-Z (26) = 62 characters
    """
    if number == 0:
        return BASE62_CHARS[0]

    result = ""
    while number > 0:
        result = BASE62_CHARS[number % 62] + result
        number //= 62

    return result


class ShortCodeStrategy(ABC):
    """Abstract base class for short code generation strategies"""

    @abstractmethod
    def generate(self, length: Optional[int] = None) -> str:
        """
        Generate a candidate short code.

        Args:
            length: Requested code length, clamped to [4, 12].
                    Defaults to the length the strategy was built with.

        Returns:
            A candidate short code (not guaranteed unique)

        Raises:
            GenerationError: If no candidate can be produced
        """
        pass


class RandomShortCodeStrategy(ShortCodeStrategy):
    """
    Random generation strategy.
    Draws each symbol independently from the Base62 alphabet using the
    operating system's CSPRNG.

    Pros: Unpredictable, no coordination between instances
    Cons: Collisions possible (62^7 ~ 3.5e12 codes at the default length)
    """

    def __init__(self, length: int = DEFAULT_LENGTH, alphabet: str = BASE62_CHARS):
        if len(alphabet) < 36:
            raise ValueError("alphabet must have at least 36 symbols")
        self.length = clamp_length(length)
        self.characters = alphabet

    def generate(self, length: Optional[int] = None) -> str:
        size = clamp_length(length) if length is not None else self.length
        try:
            return ''.join(secrets.choice(self.characters) for _ in range(size))
        except (OSError, NotImplementedError) as e:
            raise GenerationError(f"entropy source failed: {e}") from e


class SnowflakeShortCodeStrategy(ShortCodeStrategy):
    """
    Sequential strategy built on a Snowflake-style 64-bit id.

    Layout: milliseconds since epoch (41 bits) | instance id (10 bits) |
    sequence (12 bits). Ids from one process never repeat, and instances
    with distinct ids never overlap. The id is Base62-encoded.

    Pros: No collisions between correctly configured instances
    Cons: Codes are guessable and need 11 symbols once the clock is large
    """

    EPOCH_MS = 1640995200000  # 2022-01-01T00:00:00Z
    INSTANCE_BITS = 10
    SEQUENCE_BITS = 12
    MAX_INSTANCE_ID = (1 << INSTANCE_BITS) - 1
    SEQUENCE_MASK = (1 << SEQUENCE_BITS) - 1

    def __init__(
        self,
        instance_id: int = 0,
        length: int = MAX_LENGTH,
        clock: Callable[[], int] = None
    ):
        if not 0 <= instance_id <= self.MAX_INSTANCE_ID:
            raise ValueError(f"instance_id must be within 0..{self.MAX_INSTANCE_ID}")
        self.instance_id = instance_id
        self.length = clamp_length(length)
        self._clock = clock or (lambda: time.time_ns() // 1_000_000)
        self._lock = threading.Lock()
        self._last_ms = -1
        self._sequence = 0

    def _wait_until_after(self, last_ms: int) -> int:
        now = self._clock()
        while now <= last_ms:
            time.sleep(0.0005)
            now = self._clock()
        return now

    def next_id(self) -> int:
        with self._lock:
            now = self._clock()

            if now < self._last_ms:
                # Clock went backwards: never reuse a (ms, sequence) pair
                now = self._wait_until_after(self._last_ms - 1)

            if now == self._last_ms:
                self._sequence = (self._sequence + 1) & self.SEQUENCE_MASK
                if self._sequence == 0:
                    now = self._wait_until_after(self._last_ms)
            else:
                self._sequence = 0

            self._last_ms = now
            return (
                ((now - self.EPOCH_MS) << (self.INSTANCE_BITS + self.SEQUENCE_BITS))
                | (self.instance_id << self.SEQUENCE_BITS)
                | self._sequence
            )

    def generate(self, length: Optional[int] = None) -> str:
        size = clamp_length(length) if length is not None else self.length
        encoded = base62_encode(self.next_id())

        # Truncating would map distinct ids onto the same code
        if len(encoded) > size:
            raise GenerationError(
                f"Snowflake code '{encoded}' exceeds requested length {size}. "
                f"Increase short_code_length or use the random strategy."
            )

        return encoded
