"""Work items, per-item results and batch results."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Generic, TypeVar

from .core.config import GenerationOptions
from .strategies.errors import RetryDecision

TOutput = TypeVar("TOutput")  # Artifact produced by the process function


class WorkItemStatus(Enum):
    """Lifecycle of a work item within one batch run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkItemStatus.SUCCEEDED, WorkItemStatus.FAILED)


_ALLOWED_TRANSITIONS = {
    WorkItemStatus.PENDING: {WorkItemStatus.RUNNING, WorkItemStatus.SUCCEEDED, WorkItemStatus.FAILED},
    WorkItemStatus.RUNNING: {WorkItemStatus.SUCCEEDED, WorkItemStatus.FAILED},
    WorkItemStatus.SUCCEEDED: set(),
    WorkItemStatus.FAILED: set(),
}


@dataclass
class WorkItem:
    """
    One unit of batch work: a media payload (or a bare prompt) and its options.

    Attributes:
        item_id: Unique identifier, usually the input file name or path
        data: Payload bytes (mutually exclusive with path)
        path: File to read the payload from (mutually exclusive with data)
        mime_type: Declared MIME type (default: derived from the path extension)
        prompt: Prompt text for tasks driven by a prompt, such as image generation
        options: Per-item overrides forwarded into the request
        output: Where the collaborator layer will write the artifact
        context: Arbitrary data passed through to the result
        status: Current status; only the orchestrator changes it
        skipped: True when the item succeeded because its output already existed
    """

    item_id: str
    data: bytes | None = None
    path: Path | None = None
    mime_type: str | None = None
    prompt: str = ""
    options: GenerationOptions = field(default_factory=GenerationOptions)
    output: Path | None = None
    context: Any = None
    status: WorkItemStatus = WorkItemStatus.PENDING
    skipped: bool = False

    def __post_init__(self):
        """Validate work item fields."""
        if not self.item_id or not isinstance(self.item_id, str):
            raise ValueError(
                f"item_id must be a non-empty string (got {type(self.item_id).__name__}: {repr(self.item_id)}). "
                f"Provide a unique string identifier for this work item."
            )
        if not self.item_id.strip():
            raise ValueError(
                f"item_id cannot be whitespace only (got {repr(self.item_id)}). "
                f"Provide a non-whitespace string identifier."
            )
        if self.data is not None and self.path is not None:
            raise ValueError(
                f"Work item {self.item_id} has both data and path. Provide exactly one payload source."
            )
        if self.path is not None:
            self.path = Path(self.path)
        if self.output is not None:
            self.output = Path(self.output)

    def transition(self, status: WorkItemStatus) -> None:
        """Move to a new status; status only moves forward."""
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(
                f"Work item {self.item_id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status


@dataclass
class WorkItemResult(Generic[TOutput]):
    """
    Result of processing a single work item.

    Attributes:
        item_id: ID of the work item
        success: Whether processing succeeded (skipped items count as succeeded)
        output: Artifact returned by the process function, None if failed or skipped
        error: "<Type>: <message>" if failed, None otherwise
        error_kind: Classification of the failure ("rate_limit", "client_error", "cancelled", ...)
        decision: Retry decision of the final error, None for success and cancellation
        skipped: True when the output already existed
        duration: Seconds spent processing the item
        context: Context data from the work item
    """

    item_id: str
    success: bool
    output: TOutput | None = None
    error: str | None = None
    error_kind: str | None = None
    decision: RetryDecision | None = None
    skipped: bool = False
    duration: float = 0.0
    context: Any = None


@dataclass(frozen=True)
class BatchResult(Generic[TOutput]):
    """
    Ordered results of a batch run, one per work item in submission order.

    Attributes:
        results: Individual work item results
        total: Number of items in the batch
        processed: Items that went through the process function (total - skipped)
        succeeded: Successful items, including skipped ones
        failed: Failed items, including cancelled ones
        skipped: Items whose output already existed
        cancelled: Items failed because the run was cancelled
    """

    results: tuple[WorkItemResult[TOutput], ...]
    total: int = field(init=False)
    processed: int = field(init=False)
    succeeded: int = field(init=False)
    failed: int = field(init=False)
    skipped: int = field(init=False)
    cancelled: int = field(init=False)

    def __post_init__(self):
        """Calculate summary statistics from results."""
        results = tuple(self.results)
        skipped = sum(1 for r in results if r.skipped)
        object.__setattr__(self, "results", results)
        object.__setattr__(self, "total", len(results))
        object.__setattr__(self, "skipped", skipped)
        object.__setattr__(self, "processed", len(results) - skipped)
        object.__setattr__(self, "succeeded", sum(1 for r in results if r.success))
        object.__setattr__(self, "failed", sum(1 for r in results if not r.success))
        object.__setattr__(
            self, "cancelled", sum(1 for r in results if r.error_kind == "cancelled")
        )

    @property
    def failures(self) -> list[WorkItemResult[TOutput]]:
        return [r for r in self.results if not r.success]

    def summary(self) -> str:
        """Human-readable summary enumerating failed items with their reason."""
        lines = [
            f"Processed: {self.processed}, Skipped: {self.skipped}, "
            f"Succeeded: {self.succeeded}, Failed: {self.failed} (of {self.total})"
        ]
        if self.failures:
            lines.append("Failed items:")
            for result in self.failures:
                lines.append(f"  ✗ {result.item_id} [{result.error_kind}]: {result.error}")
        return "\n".join(lines)


# Per-item work, usually GeminiClient.work_item_processor()
ProcessFunc = Callable[[WorkItem], Awaitable[TOutput]]

# "Output already exists" predicate, sync or async
OutputExistsFunc = Callable[[WorkItem], bool | Awaitable[bool]]

# Type alias for progress callback function (completed, total, current_item_id)
ProgressCallbackFunc = Callable[[int, int, str], Awaitable[None] | None]


@dataclass
class ProcessingStats:
    """Live statistics for one batch run."""

    total: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    running: int = 0
    peak_running: int = 0
    start_time: float | None = None
    error_counts: dict[str, int] = field(default_factory=dict)

    def copy(self) -> dict[str, Any]:
        """Return a dictionary snapshot of the stats."""
        return {
            "total": self.total,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "running": self.running,
            "peak_running": self.peak_running,
            "start_time": self.start_time,
            "error_counts": self.error_counts.copy(),
        }
