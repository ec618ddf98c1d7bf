"""Rate limit handling strategies."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT_DELAYS = (30.0, 60.0, 90.0)


class RateLimitStrategy(ABC):
    """Strategy for choosing how long to wait after a 429 response."""

    @abstractmethod
    def delay_for(self, occurrence: int, retry_after: float | None = None) -> float:
        """
        Called when a call was rate limited and another attempt remains.

        Args:
            occurrence: How many rate-limited responses this call has seen (1-based)
            retry_after: Server-provided retry hint in seconds, if any

        Returns:
            Delay before the next attempt in seconds
        """
        ...


class EscalatingDelayStrategy(RateLimitStrategy):
    """Walk an explicit delay sequence, clamping to its last value."""

    def __init__(self, delays: Sequence[float] = DEFAULT_RATE_LIMIT_DELAYS):
        """
        Initialize escalating delay strategy.

        Args:
            delays: Delay in seconds for the first, second, ... rate-limited response
        """
        if not delays:
            raise ConfigError(
                "rate limit delays must not be empty. "
                "Provide at least one delay in seconds (default: 30, 60, 90)."
            )
        if any(delay < 0 for delay in delays):
            raise ConfigError(f"rate limit delays must be >= 0 (got {tuple(delays)}).")
        self.delays = tuple(float(delay) for delay in delays)

    def delay_for(self, occurrence: int, retry_after: float | None = None) -> float:
        """Return the delay for this occurrence; a longer server hint wins."""
        index = min(max(occurrence, 1), len(self.delays)) - 1
        delay = self.delays[index]
        if retry_after is not None and retry_after > delay:
            logger.debug(f"Server asked for {retry_after:.1f}s, longer than scheduled {delay:.1f}s")
            delay = retry_after
        return delay


class FixedDelayStrategy(RateLimitStrategy):
    """Simple fixed delay after every rate-limited response."""

    def __init__(self, cooldown: float = 60.0):
        """
        Initialize fixed delay strategy.

        Args:
            cooldown: Fixed cooldown duration in seconds
        """
        self.cooldown = cooldown

    def delay_for(self, occurrence: int, retry_after: float | None = None) -> float:
        """Return fixed cooldown duration (or the server hint when it is longer)."""
        if retry_after is not None and retry_after > self.cooldown:
            return retry_after
        return self.cooldown
