"""Error types and classification for Gemini API calls."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

import httpx
from pydantic import ValidationError


class RetryDecision(Enum):
    """Classification of a single attempt's outcome."""

    SUCCESS = "success"
    RETRYABLE_TRANSIENT = "retryable_transient"
    RETRYABLE_RATE_LIMITED = "retryable_rate_limited"
    FATAL_CLIENT = "fatal_client"
    FATAL_OTHER = "fatal_other"

    @property
    def is_retryable(self) -> bool:
        return self in (RetryDecision.RETRYABLE_TRANSIENT, RetryDecision.RETRYABLE_RATE_LIMITED)


def classify_status(status_code: int) -> RetryDecision:
    """Map an HTTP status code to a retry decision."""
    if 200 <= status_code < 300:
        return RetryDecision.SUCCESS
    if status_code == 429:
        return RetryDecision.RETRYABLE_RATE_LIMITED
    if status_code >= 500:
        return RetryDecision.RETRYABLE_TRANSIENT
    if 400 <= status_code < 500:
        return RetryDecision.FATAL_CLIENT
    # 1xx/3xx should never reach us (redirects are followed by httpx or rejected)
    return RetryDecision.FATAL_OTHER


class MediaBatchError(Exception):
    """Base error for media_batch."""

    decision: RetryDecision = RetryDecision.FATAL_OTHER
    category: str = "media_batch_error"


class ConfigError(MediaBatchError, ValueError):
    """Missing credential or invalid configuration. Aborts the run before any work starts."""

    category = "config_error"


class APIError(MediaBatchError):
    """Non-success outcome of a single HTTP call to the Gemini API."""

    def __init__(
        self,
        decision: RetryDecision,
        status_code: int | None,
        message: str,
        retry_after: float | None = None,
    ):
        self.decision = decision
        self.status_code = status_code
        self.message = message
        self.retry_after = retry_after
        status = f"HTTP {status_code}" if status_code is not None else "no response"
        super().__init__(f"Gemini API error ({status}): {message}")

    @property
    def category(self) -> str:  # type: ignore[override]
        if self.decision is RetryDecision.RETRYABLE_RATE_LIMITED:
            return "rate_limit"
        if self.status_code is None:
            return "connection_error"
        if self.decision is RetryDecision.RETRYABLE_TRANSIENT:
            return "server_error"
        if self.decision is RetryDecision.FATAL_CLIENT:
            return "client_error"
        return "api_error"


class PayloadTooLargeError(MediaBatchError):
    """Payload exceeds the service's absolute size limit. Raised before any network call."""

    decision = RetryDecision.FATAL_CLIENT
    category = "payload_too_large"

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Payload of {size} bytes exceeds the hard limit of {limit} bytes")


class ProtocolError(MediaBatchError):
    """The upload protocol could not complete (fatal for this upload attempt)."""

    category = "protocol_error"


class MissingUploadURLError(ProtocolError):
    """The upload-initiate response did not carry a session URL."""

    category = "missing_upload_url"

    def __init__(self, message: str = "Missing upload URL in response headers"):
        super().__init__(message)


class ProcessingTimeoutError(ProtocolError):
    """An uploaded file did not become ACTIVE within the processing timeout."""

    category = "processing_timeout"

    def __init__(self, file_name: str, timeout: float):
        self.file_name = file_name
        self.timeout = timeout
        super().__init__(f"File {file_name} not ACTIVE after {timeout:.0f} seconds")


class UploadFailedError(ProtocolError):
    """The service reported the uploaded file as FAILED."""

    category = "upload_failed"


class InvalidResponseError(ProtocolError):
    """A response body did not have the expected shape."""

    category = "invalid_response"


@dataclass
class ErrorInfo:
    """Structured information about an error."""

    decision: RetryDecision
    error_category: str
    suggested_wait: float | None = None

    @property
    def is_retryable(self) -> bool:
        return self.decision.is_retryable

    @property
    def is_rate_limit(self) -> bool:
        return self.decision is RetryDecision.RETRYABLE_RATE_LIMITED


class ErrorClassifier(ABC):
    """Abstract base class for classifying errors raised during a call."""

    @abstractmethod
    def classify(self, exception: Exception) -> ErrorInfo:
        """
        Classify an exception and determine handling strategy.

        Args:
            exception: The exception to classify

        Returns:
            ErrorInfo with classification details
        """
        pass


class DefaultErrorClassifier(ErrorClassifier):
    """Classifier for errors raised by the transport, upload protocol and response parsing."""

    def classify(self, exception: Exception) -> ErrorInfo:
        """Classify errors, falling back to retryable for unknown exceptions."""
        if isinstance(exception, APIError):
            return ErrorInfo(
                decision=exception.decision,
                error_category=exception.category,
                suggested_wait=exception.retry_after,
            )

        if isinstance(exception, MediaBatchError):
            return ErrorInfo(decision=exception.decision, error_category=exception.category)

        # httpx raises these when the client is used directly (outside TransportClient)
        if isinstance(exception, (httpx.TimeoutException, TimeoutError)):
            return ErrorInfo(
                decision=RetryDecision.RETRYABLE_TRANSIENT,
                error_category="timeout",
            )

        if isinstance(exception, (httpx.TransportError, ConnectionError)):
            return ErrorInfo(
                decision=RetryDecision.RETRYABLE_TRANSIENT,
                error_category="connection_error",
            )

        # Malformed response bodies won't be fixed by sending the same request again
        if isinstance(exception, (ValidationError, json.JSONDecodeError)):
            return ErrorInfo(
                decision=RetryDecision.FATAL_OTHER,
                error_category="invalid_response",
            )

        logic_bug_types = (
            ValueError,
            TypeError,
            AttributeError,
            KeyError,
            IndexError,
            NameError,
            ZeroDivisionError,
            AssertionError,
            OSError,
        )
        if isinstance(exception, logic_bug_types):
            return ErrorInfo(
                decision=RetryDecision.FATAL_OTHER,  # Deterministic failures
                error_category="logic_error",
            )

        # Default: treat unknown generic exceptions as transient
        return ErrorInfo(
            decision=RetryDecision.RETRYABLE_TRANSIENT,
            error_category="unknown",
        )
