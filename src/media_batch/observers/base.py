"""Observer system for client and orchestrator events."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

OBSERVER_TIMEOUT = 5.0


class ProcessingEvent(Enum):
    """Events that can be observed during a batch run."""

    ITEM_STARTED = "item_started"
    ITEM_COMPLETED = "item_completed"
    ITEM_FAILED = "item_failed"
    ITEM_SKIPPED = "item_skipped"
    RETRY_SCHEDULED = "retry_scheduled"
    RATE_LIMIT_HIT = "rate_limit_hit"
    UPLOAD_STARTED = "upload_started"
    UPLOAD_COMPLETED = "upload_completed"
    WORKER_STARTED = "worker_started"
    WORKER_STOPPED = "worker_stopped"
    BATCH_STARTED = "batch_started"
    BATCH_COMPLETED = "batch_completed"
    BATCH_CANCELLED = "batch_cancelled"


class ProcessorObserver(ABC):
    """Abstract base class for event observers."""

    @abstractmethod
    async def on_event(
        self,
        event: ProcessingEvent,
        data: dict[str, Any],
    ) -> None:
        """
        Handle an event.

        Args:
            event: The event type
            data: Event-specific data
        """
        pass


class BaseObserver(ProcessorObserver):
    """Base observer with no-op implementation."""

    async def on_event(
        self,
        event: ProcessingEvent,
        data: dict[str, Any],
    ) -> None:
        """Default: do nothing."""
        pass


async def notify_observers(
    observers: Sequence[ProcessorObserver],
    event: ProcessingEvent,
    data: dict[str, Any] | None = None,
) -> None:
    """Emit event to all observers. Observer failures are logged and never propagate."""
    if not observers:
        return

    event_data = data or {}
    for observer in observers:
        try:
            await asyncio.wait_for(
                observer.on_event(event, event_data),
                timeout=OBSERVER_TIMEOUT,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"⚠️  Observer callback timed out after {OBSERVER_TIMEOUT:.0f}s for event {event.name}"
            )
        except Exception as e:
            logger.warning(f"⚠️  Observer error: {e}")
