"""Observers for monitoring client and orchestrator events."""

from .base import BaseObserver, ProcessingEvent, ProcessorObserver, notify_observers
from .metrics import MetricsObserver

__all__ = [
    "ProcessorObserver",
    "BaseObserver",
    "ProcessingEvent",
    "MetricsObserver",
    "notify_observers",
]
