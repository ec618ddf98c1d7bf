"""Bounded retries with exponential backoff and a separate rate-limit schedule."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from .core.config import RetryConfig
from .core.protocols import SleepFunc
from .observers import ProcessingEvent, ProcessorObserver, notify_observers
from .strategies import (
    DefaultErrorClassifier,
    ErrorClassifier,
    EscalatingDelayStrategy,
    RateLimitStrategy,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """
    Run an async operation with a shared attempt budget.

    Transient failures back off exponentially (base_delay * 2**attempt_index,
    capped at max_delay). Rate-limited failures wait according to the rate
    limit strategy instead. Fatal failures are re-raised at once, and after the
    budget is spent the last error is re-raised unchanged. No sleep follows
    the final attempt.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        classifier: ErrorClassifier | None = None,
        rate_limit_strategy: RateLimitStrategy | None = None,
        observers: Sequence[ProcessorObserver] | None = None,
        sleep: SleepFunc | None = None,
    ):
        """
        Initialize the retry policy.

        Args:
            config: Attempt budget and delays (default: RetryConfig())
            classifier: Maps exceptions to retry decisions (default: DefaultErrorClassifier)
            rate_limit_strategy: Delay schedule for 429s (default: config.rate_limit_delays)
            observers: Receive RETRY_SCHEDULED and RATE_LIMIT_HIT events
            sleep: Awaitable sleep, injectable for tests (default: asyncio.sleep)
        """
        self.config = config or RetryConfig()
        self.config.validate()
        self.classifier = classifier or DefaultErrorClassifier()
        self.rate_limit_strategy = rate_limit_strategy or EscalatingDelayStrategy(
            self.config.rate_limit_delays
        )
        self.observers = list(observers or [])
        self._sleep = sleep or asyncio.sleep

    def backoff_delay(self, attempt_index: int) -> float:
        """Generic backoff before the attempt following failure number attempt_index (0-based)."""
        return min(self.config.base_delay * (2**attempt_index), self.config.max_delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "request",
        time_budget: float | None = None,
    ) -> T:
        """
        Call operation until it succeeds, fails fatally, or the budget is spent.

        Args:
            operation: Zero-argument coroutine function; called once per attempt
            description: Label used in log messages and events
            time_budget: Optional cap in seconds on the total time spent sleeping
                between attempts. A retry whose delay would overrun it is not
                scheduled and the last error is re-raised instead.

        Returns:
            The operation's result from the first successful attempt

        Raises:
            Exception: The last error raised by operation
        """
        max_attempts = self.config.max_attempts
        rate_limit_hits = 0
        slept = 0.0

        for attempt in range(1, max_attempts + 1):
            try:
                result = await operation()
            except Exception as e:
                error_info = self.classifier.classify(e)

                if not error_info.is_retryable:
                    logger.debug(
                        f"{description}: {error_info.error_category} is not retryable "
                        f"({type(e).__name__}), giving up after attempt {attempt}"
                    )
                    raise

                if attempt >= max_attempts:
                    logger.error(
                        f"✗ {description}: all {max_attempts} attempts exhausted. "
                        f"Final error: {type(e).__name__}: {str(e)[:300]}"
                    )
                    raise

                if error_info.is_rate_limit:
                    delay = self.rate_limit_strategy.delay_for(
                        rate_limit_hits + 1, error_info.suggested_wait
                    )
                else:
                    delay = self.backoff_delay(attempt - 1)

                if time_budget is not None and slept + delay > time_budget:
                    logger.error(
                        f"✗ {description}: next retry in {delay:.1f}s would exceed the "
                        f"{time_budget:.1f}s time budget, giving up after attempt {attempt}. "
                        f"Final error: {type(e).__name__}: {str(e)[:300]}"
                    )
                    raise

                if error_info.is_rate_limit:
                    rate_limit_hits += 1
                    logger.warning(
                        f"🚫 {description}: rate limited (attempt {attempt}/{max_attempts}). "
                        f"Waiting {delay:.1f}s before retrying..."
                    )
                    await notify_observers(
                        self.observers,
                        ProcessingEvent.RATE_LIMIT_HIT,
                        {"description": description, "attempt": attempt, "occurrence": rate_limit_hits},
                    )
                else:
                    logger.warning(
                        f"⚠️  {description}: attempt {attempt}/{max_attempts} failed "
                        f"({error_info.error_category}: {str(e)[:150]}). Retrying in {delay:.1f}s..."
                    )

                await notify_observers(
                    self.observers,
                    ProcessingEvent.RETRY_SCHEDULED,
                    {
                        "description": description,
                        "attempt": attempt,
                        "delay": delay,
                        "error_category": error_info.error_category,
                    },
                )
                if delay > 0:
                    await self._sleep(delay)
                    slept += delay
                continue

            if attempt > 1:
                logger.info(f"✓ {description}: succeeded on attempt {attempt} after {attempt - 1} failure(s)")
            return result

        # Unreachable: every path above returns or raises
        raise RuntimeError(f"Unexpected: retry loop for {description} ended without a result")
