"""Error classification and rate limit strategies."""

from .errors import (
    APIError,
    ConfigError,
    DefaultErrorClassifier,
    ErrorClassifier,
    ErrorInfo,
    InvalidResponseError,
    MediaBatchError,
    MissingUploadURLError,
    PayloadTooLargeError,
    ProcessingTimeoutError,
    ProtocolError,
    RetryDecision,
    UploadFailedError,
    classify_status,
)
from .rate_limit import (
    DEFAULT_RATE_LIMIT_DELAYS,
    EscalatingDelayStrategy,
    FixedDelayStrategy,
    RateLimitStrategy,
)

__all__ = [
    "RetryDecision",
    "classify_status",
    "MediaBatchError",
    "ConfigError",
    "APIError",
    "PayloadTooLargeError",
    "ProtocolError",
    "MissingUploadURLError",
    "ProcessingTimeoutError",
    "UploadFailedError",
    "InvalidResponseError",
    "ErrorClassifier",
    "ErrorInfo",
    "DefaultErrorClassifier",
    "RateLimitStrategy",
    "EscalatingDelayStrategy",
    "FixedDelayStrategy",
    "DEFAULT_RATE_LIMIT_DELAYS",
]
