"""Batch processing of audio and images through the Gemini REST API.

This package submits media to Gemini and retrieves results reliably at scale:
a retrying transport, inline vs. resumable upload, and a concurrent batch
orchestrator with launch pacing and per-item failure accounting.

Key features:
- Failure classification (transient, rate limited, client, other)
- Exponential backoff plus an escalating rate-limit delay schedule
- Resumable upload with polling until the file is ACTIVE
- Bounded concurrency with a minimum delay between launches
- Skip predicate for items whose output already exists
- Observer pattern for monitoring

Example:
    >>> from media_batch import BatchConfig, BatchOrchestrator, GeminiClient, WorkItem
    >>> from media_batch.tasks import parse_transcript, transcription_instructions
    >>>
    >>> items = [WorkItem(item_id=p.name, path=p) for p in audio_files]
    >>> async with GeminiClient.from_env() as client:
    ...     orchestrator = BatchOrchestrator(BatchConfig(max_workers=2, launch_delay=5.0))
    ...     result = await orchestrator.run(
    ...         items,
    ...         client.work_item_processor(transcription_instructions, parse_transcript),
    ...     )
    >>> print(result.summary())
"""

# Core classes
from .base import (
    BatchResult,
    ProcessingStats,
    ProgressCallbackFunc,
    WorkItem,
    WorkItemResult,
    WorkItemStatus,
)

# Client
from .client import GeminiClient, GenerationInstructions, GenerationResult

# Configuration
from .core import (
    BatchConfig,
    ClientConfig,
    GenerationOptions,
    RetryConfig,
    TransportConfig,
    UploadConfig,
    load_api_key,
)
from .logging_utils import setup_logging
from .mime import DEFAULT_MIME_TYPE, extension_for_mime_type, mime_type_for_path

# Observers
from .observers import BaseObserver, MetricsObserver, ProcessingEvent, ProcessorObserver

# Orchestrator
from .parallel import BatchOrchestrator, run_batch

# Request strategy
from .payload import (
    Inline,
    RemoteReference,
    TransferMode,
    build_generate_request,
    check_payload_size,
    choose_transfer_mode,
)
from .retry import RetryPolicy

# Error classification and rate limit strategies
from .strategies import (
    APIError,
    ConfigError,
    DefaultErrorClassifier,
    ErrorClassifier,
    ErrorInfo,
    EscalatingDelayStrategy,
    FixedDelayStrategy,
    InvalidResponseError,
    MediaBatchError,
    MissingUploadURLError,
    PayloadTooLargeError,
    ProcessingTimeoutError,
    ProtocolError,
    RateLimitStrategy,
    RetryDecision,
    UploadFailedError,
)
from .transport import TransportClient, TransportResponse
from .upload import FileState, FileUploader, RemoteFile, UploadPhase

__all__ = [
    # Core
    "BatchResult",
    "ProcessingStats",
    "ProgressCallbackFunc",
    "WorkItem",
    "WorkItemResult",
    "WorkItemStatus",
    # Configuration
    "BatchConfig",
    "ClientConfig",
    "GenerationOptions",
    "RetryConfig",
    "TransportConfig",
    "UploadConfig",
    "load_api_key",
    "setup_logging",
    # Client and transport
    "GeminiClient",
    "GenerationInstructions",
    "GenerationResult",
    "RetryPolicy",
    "TransportClient",
    "TransportResponse",
    # Upload and request strategy
    "FileState",
    "FileUploader",
    "RemoteFile",
    "UploadPhase",
    "Inline",
    "RemoteReference",
    "TransferMode",
    "build_generate_request",
    "check_payload_size",
    "choose_transfer_mode",
    "DEFAULT_MIME_TYPE",
    "extension_for_mime_type",
    "mime_type_for_path",
    # Errors and strategies
    "RetryDecision",
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
    # Observers
    "ProcessorObserver",
    "BaseObserver",
    "MetricsObserver",
    "ProcessingEvent",
    # Orchestrator
    "BatchOrchestrator",
    "run_batch",
]

__version__ = "0.1.0"
