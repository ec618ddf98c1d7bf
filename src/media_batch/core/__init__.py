"""Core components: configuration and shared protocols."""

from .config import (
    DEFAULT_BASE_URL,
    DEFAULT_INLINE_THRESHOLD,
    DEFAULT_MAX_PAYLOAD_SIZE,
    DEFAULT_MODEL,
    BatchConfig,
    ClientConfig,
    GenerationOptions,
    RetryConfig,
    TransportConfig,
    UploadConfig,
    load_api_key,
)
from .protocols import ClockFunc, SleepFunc

__all__ = [
    "BatchConfig",
    "ClientConfig",
    "GenerationOptions",
    "RetryConfig",
    "TransportConfig",
    "UploadConfig",
    "load_api_key",
    "DEFAULT_BASE_URL",
    "DEFAULT_MODEL",
    "DEFAULT_INLINE_THRESHOLD",
    "DEFAULT_MAX_PAYLOAD_SIZE",
    "ClockFunc",
    "SleepFunc",
]
