"""Concurrent batch orchestrator with bounded workers and launch pacing."""

import asyncio
import inspect
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from typing import Generic

from .base import (
    BatchResult,
    OutputExistsFunc,
    ProcessFunc,
    ProcessingStats,
    ProgressCallbackFunc,
    TOutput,
    WorkItem,
    WorkItemResult,
    WorkItemStatus,
)
from .core.config import BatchConfig
from .core.protocols import ClockFunc, SleepFunc
from .observers import ProcessingEvent, ProcessorObserver, notify_observers
from .strategies import DefaultErrorClassifier, ErrorClassifier

logger = logging.getLogger(__name__)

CANCELLED_KIND = "cancelled"


async def _invoke(process_fn: ProcessFunc, item: WorkItem):
    """Await process_fn inside the task so a non-async callable fails as that item's error."""
    return await process_fn(item)


@dataclass
class _RunState:
    """Mutable state of one batch run, shared by its workers."""

    items: Sequence[WorkItem]
    process_fn: ProcessFunc
    output_exists: OutputExistsFunc | None
    cancel_event: asyncio.Event
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    results: list[WorkItemResult | None] = field(default_factory=list)
    stats: ProcessingStats = field(default_factory=ProcessingStats)
    stats_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    pacing_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_launch: float | None = None


class BatchOrchestrator(Generic[TOutput]):
    """
    Run work items to completion with at most max_workers in flight.

    A fixed pool of workers pulls (index, item) pairs from a queue. Successive
    launches are at least launch_delay seconds apart. A failing item never
    affects the others: every exception from the process function becomes a
    failed WorkItemResult. Results keep submission order.

    Example:
        >>> orchestrator = BatchOrchestrator(BatchConfig(max_workers=2, launch_delay=5.0))
        >>> result = await orchestrator.run(items, client.work_item_processor())
        >>> print(result.summary())
    """

    def __init__(
        self,
        config: BatchConfig | None = None,
        *,
        max_workers: int | None = None,
        launch_delay: float | None = None,
        error_classifier: ErrorClassifier | None = None,
        observers: list[ProcessorObserver] | None = None,
        progress_callback: ProgressCallbackFunc | None = None,
        sleep: SleepFunc | None = None,
        clock: ClockFunc | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Batch configuration (recommended)
            max_workers: Overrides config.max_workers
            launch_delay: Overrides config.launch_delay
            error_classifier: Classifies per-item failures (default: DefaultErrorClassifier)
            observers: List of observers for events
            progress_callback: Optional callback(completed, total, current_item_id), sync or async
            sleep: Awaitable sleep used for pacing (tests inject a fake)
            clock: Monotonic clock used for pacing (tests inject a fake)
        """
        config = replace(config) if config is not None else BatchConfig()
        if max_workers is not None:
            config.max_workers = max_workers
        if launch_delay is not None:
            config.launch_delay = launch_delay
        config.validate()

        self.config = config
        self.error_classifier = error_classifier or DefaultErrorClassifier()
        self.observers = observers or []
        self.progress_callback = progress_callback
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or time.monotonic
        self._stats = ProcessingStats()

    async def get_stats(self) -> dict:
        """
        Get statistics of the current or most recent run.

        Returns:
            Dictionary with total, processed, succeeded, failed, skipped, running,
            peak_running, start_time and error_counts
        """
        return self._stats.copy()

    async def _emit_event(self, event: ProcessingEvent, data: dict | None = None) -> None:
        await notify_observers(self.observers, event, data)

    async def _run_progress_callback(self, completed: int, total: int, current_item: str) -> None:
        if self.progress_callback is None:
            return
        try:
            outcome = self.progress_callback(completed, total, current_item)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"⚠️  Progress callback failed: {e}")

    async def _check_output_exists(self, state: _RunState, item: WorkItem) -> bool:
        """Consult the skip predicate; a failing predicate means the output does not exist."""
        if state.output_exists is None:
            return False
        try:
            exists = state.output_exists(item)
            if inspect.isawaitable(exists):
                exists = await exists
        except Exception as e:
            logger.warning(
                f"⚠️  Output check failed for {item.item_id}: {type(e).__name__}: {e}. Processing it anyway."
            )
            return False
        return bool(exists)

    async def _sleep_unless_cancelled(self, seconds: float, cancel_event: asyncio.Event) -> bool:
        """Sleep for seconds; return False early if cancel_event is set first."""
        if cancel_event.is_set():
            return False
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
            await asyncio.gather(sleeper, waiter, return_exceptions=True)
        return not cancel_event.is_set()

    async def _acquire_launch_slot(self, state: _RunState) -> bool:
        """Wait until launch_delay has passed since the previous launch, then claim the slot."""
        async with state.pacing_lock:
            if state.last_launch is not None and self.config.launch_delay > 0:
                wait = state.last_launch + self.config.launch_delay - self._clock()
                if wait > 0:
                    logger.debug(f"Pacing: waiting {wait:.2f}s before next launch")
                    if not await self._sleep_unless_cancelled(wait, state.cancel_event):
                        return False
            if state.cancel_event.is_set():
                return False
            state.last_launch = self._clock()
            return True

    def _cancelled_result(self, item: WorkItem, duration: float = 0.0) -> WorkItemResult:
        return WorkItemResult(
            item_id=item.item_id,
            success=False,
            error="CancelledError: batch run was cancelled",
            error_kind=CANCELLED_KIND,
            duration=duration,
            context=item.context,
        )

    async def _execute(self, state: _RunState, item: WorkItem, worker_id: int) -> WorkItemResult:
        """Run the process function for one item, racing it against cancellation."""
        start_time = self._clock()
        item.transition(WorkItemStatus.RUNNING)
        async with state.stats_lock:
            state.stats.running += 1
            state.stats.peak_running = max(state.stats.peak_running, state.stats.running)

        logger.info(f"ℹ️  [Worker {worker_id}] Started {item.item_id}")
        await self._emit_event(
            ProcessingEvent.ITEM_STARTED,
            {"item_id": item.item_id, "worker_id": worker_id, "launched_at": start_time},
        )

        task = asyncio.ensure_future(_invoke(state.process_fn, item))
        cancel_waiter = asyncio.ensure_future(state.cancel_event.wait())
        try:
            await asyncio.wait({task, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            if not cancel_waiter.done():
                cancel_waiter.cancel()
                await asyncio.gather(cancel_waiter, return_exceptions=True)
            async with state.stats_lock:
                state.stats.running -= 1

        duration = self._clock() - start_time

        if task.cancelled():
            item.transition(WorkItemStatus.FAILED)
            logger.warning(f"🚫 [Worker {worker_id}] Cancelled {item.item_id} after {duration:.1f}s")
            await self._emit_event(
                ProcessingEvent.ITEM_FAILED,
                {"item_id": item.item_id, "error_kind": CANCELLED_KIND, "duration": duration},
            )
            return self._cancelled_result(item, duration)

        error = task.exception()
        if error is None:
            item.transition(WorkItemStatus.SUCCEEDED)
            logger.info(f"✓ [Worker {worker_id}] Completed {item.item_id} in {duration:.1f}s")
            await self._emit_event(
                ProcessingEvent.ITEM_COMPLETED,
                {"item_id": item.item_id, "duration": duration},
            )
            return WorkItemResult(
                item_id=item.item_id,
                success=True,
                output=task.result(),
                duration=duration,
                context=item.context,
            )

        if not isinstance(error, Exception):
            raise error

        error_info = self.error_classifier.classify(error)
        item.transition(WorkItemStatus.FAILED)
        logger.error(
            f"✗ [Worker {worker_id}] FAILED {item.item_id} ({error_info.error_category}): "
            f"{type(error).__name__}: {str(error)[:500]}"
        )
        await self._emit_event(
            ProcessingEvent.ITEM_FAILED,
            {
                "item_id": item.item_id,
                "error_kind": error_info.error_category,
                "error_type": type(error).__name__,
                "duration": duration,
            },
        )
        return WorkItemResult(
            item_id=item.item_id,
            success=False,
            error=f"{type(error).__name__}: {str(error)[:500]}",
            error_kind=error_info.error_category,
            decision=error_info.decision,
            duration=duration,
            context=item.context,
        )

    async def _handle_item(self, state: _RunState, item: WorkItem, worker_id: int) -> WorkItemResult | None:
        """Skip, pace and run one item. Returns None if cancelled before launch."""
        if await self._check_output_exists(state, item):
            item.transition(WorkItemStatus.SUCCEEDED)
            item.skipped = True
            logger.info(f"ℹ️  Skipping {item.item_id} (output already exists)")
            await self._emit_event(ProcessingEvent.ITEM_SKIPPED, {"item_id": item.item_id})
            return WorkItemResult(item_id=item.item_id, success=True, skipped=True, context=item.context)

        if not await self._acquire_launch_slot(state):
            return None

        return await self._execute(state, item, worker_id)

    async def _record(self, state: _RunState, index: int, result: WorkItemResult) -> None:
        state.results[index] = result

        should_call_progress = False
        async with state.stats_lock:
            stats = state.stats
            if result.skipped:
                stats.skipped += 1
                stats.succeeded += 1
            else:
                stats.processed += 1
                if result.success:
                    stats.succeeded += 1
                else:
                    stats.failed += 1
                    kind = result.error_kind or "unknown"
                    stats.error_counts[kind] = stats.error_counts.get(kind, 0) + 1
            completed = stats.processed + stats.skipped
            total = stats.total
            if completed % self.config.progress_interval == 0 or completed == total:
                should_call_progress = True
                snapshot = stats.copy()

        if should_call_progress:
            self._log_progress(snapshot)
            await self._run_progress_callback(completed, total, result.item_id)

    def _log_progress(self, snapshot: dict) -> None:
        completed = snapshot["processed"] + snapshot["skipped"]
        elapsed = self._clock() - snapshot["start_time"]
        rate = snapshot["processed"] / elapsed if elapsed > 0 else 0

        error_breakdown = ""
        if snapshot["error_counts"]:
            error_strs = [f"{kind}: {count}" for kind, count in snapshot["error_counts"].items()]
            error_breakdown = f" | Errors: {', '.join(error_strs)}"

        logger.info(
            f"ℹ️  Progress: {completed}/{snapshot['total']} "
            f"({completed / snapshot['total'] * 100:.1f}%) | "
            f"Succeeded: {snapshot['succeeded']}, Failed: {snapshot['failed']}, "
            f"Skipped: {snapshot['skipped']}{error_breakdown} | {rate:.2f} items/sec"
        )

    async def _worker(self, state: _RunState, worker_id: int) -> None:
        """Worker coroutine that processes items from the queue until it is empty."""
        logger.debug(f"Worker {worker_id} started")
        await self._emit_event(ProcessingEvent.WORKER_STARTED, {"worker_id": worker_id})

        while not state.cancel_event.is_set():
            try:
                index, item = state.queue.get_nowait()
            except asyncio.QueueEmpty:
                break

            try:
                result = await self._handle_item(state, item, worker_id)
                if result is not None:
                    await self._record(state, index, result)
            finally:
                state.queue.task_done()

        logger.debug(f"Worker {worker_id} finished")
        await self._emit_event(ProcessingEvent.WORKER_STOPPED, {"worker_id": worker_id})

    async def run(
        self,
        items: Sequence[WorkItem],
        process_fn: ProcessFunc,
        output_exists: OutputExistsFunc | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchResult[TOutput]:
        """
        Process all items and return once every item is terminal.

        Args:
            items: Work items in submission order; all must be PENDING
            process_fn: Async function producing the artifact for one item
            output_exists: Predicate (sync or async); True skips the item
            cancel_event: When set, in-flight items are cancelled and no new items start

        Returns:
            BatchResult with one result per item, in submission order
        """
        items = list(items)
        seen: set[int] = set()
        for item in items:
            if id(item) in seen:
                raise ValueError(
                    f"Work item {item.item_id} appears more than once in the batch. "
                    f"Pass each WorkItem object only once."
                )
            seen.add(id(item))
            if item.status is not WorkItemStatus.PENDING:
                raise ValueError(
                    f"Work item {item.item_id} is {item.status.value}; only PENDING items can be run. "
                    f"Create fresh work items for a new batch."
                )

        state = _RunState(
            items=items,
            process_fn=process_fn,
            output_exists=output_exists,
            cancel_event=cancel_event or asyncio.Event(),
            results=[None] * len(items),
        )
        state.stats.total = len(items)
        state.stats.start_time = self._clock()
        self._stats = state.stats

        if not items:
            return BatchResult(results=())

        for index, item in enumerate(items):
            state.queue.put_nowait((index, item))

        worker_count = min(self.config.max_workers, len(items))
        logger.info(
            f"ℹ️  Starting batch of {len(items)} items with {worker_count} worker(s), "
            f"{self.config.launch_delay:.1f}s between launches"
        )
        await self._emit_event(
            ProcessingEvent.BATCH_STARTED, {"total": len(items), "workers": worker_count}
        )

        workers = [
            asyncio.create_task(self._worker(state, worker_id)) for worker_id in range(worker_count)
        ]
        try:
            await asyncio.gather(*workers)
        finally:
            for worker in workers:
                if not worker.done():
                    worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        if state.cancel_event.is_set():
            never_started = 0
            for index, item in enumerate(items):
                if state.results[index] is None:
                    item.transition(WorkItemStatus.FAILED)
                    never_started += 1
                    await self._record(state, index, self._cancelled_result(item))
            logger.warning(f"🚫 Batch cancelled; {never_started} item(s) never started")
            await self._emit_event(ProcessingEvent.BATCH_CANCELLED, {"never_started": never_started})

        batch_result: BatchResult[TOutput] = BatchResult(results=tuple(state.results))
        logger.info(
            f"✓ Batch complete: processed {batch_result.processed}, skipped {batch_result.skipped}, "
            f"failed {batch_result.failed}"
        )
        await self._emit_event(ProcessingEvent.BATCH_COMPLETED, state.stats.copy())
        return batch_result


async def run_batch(
    items: Sequence[WorkItem],
    process_fn: ProcessFunc,
    concurrency: int = 2,
    delay: float = 5.0,
    *,
    output_exists: OutputExistsFunc | None = None,
    cancel_event: asyncio.Event | None = None,
    observers: list[ProcessorObserver] | None = None,
    progress_callback: ProgressCallbackFunc | None = None,
) -> BatchResult:
    """
    Convenience wrapper: run items with concurrency J and launch delay D.

    Example:
        >>> async with GeminiClient.from_env() as client:
        ...     result = await run_batch(items, client.work_item_processor(), concurrency=2, delay=5.0)
    """
    orchestrator: BatchOrchestrator = BatchOrchestrator(
        BatchConfig(max_workers=concurrency, launch_delay=delay),
        observers=observers,
        progress_callback=progress_callback,
    )
    return await orchestrator.run(
        items, process_fn, output_exists=output_exists, cancel_event=cancel_event
    )
