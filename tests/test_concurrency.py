"""Concurrency, pacing and cancellation tests for the batch orchestrator.

These tests verify that the worker pool never exceeds its bound, that launches
are spaced by the configured delay, and that cancellation leaves every item
in a terminal state.
"""

import asyncio

import pytest

from media_batch import (
    BatchConfig,
    BatchOrchestrator,
    ClientConfig,
    GenerationOptions,
    MetricsObserver,
    ProcessingEvent,
    UploadConfig,
    WorkItem,
    WorkItemStatus,
)
from media_batch.observers import BaseObserver
from media_batch.testing import FakeClock, MockGeminiAPI, ScriptedProcessor


def make_items(count: int) -> list[WorkItem]:
    return [WorkItem(item_id=f"item-{i}", data=b"audio", mime_type="audio/mpeg") for i in range(count)]


class LaunchRecorder(BaseObserver):
    """Records the clock time of each ITEM_STARTED event."""

    def __init__(self):
        self.launches: list[tuple[str, float]] = []

    async def on_event(self, event, data):
        if event == ProcessingEvent.ITEM_STARTED:
            self.launches.append((data["item_id"], data["launched_at"]))


@pytest.mark.asyncio
@pytest.mark.parametrize("max_workers", [1, 2, 3])
async def test_concurrency_never_exceeds_bound(max_workers):
    """Test that at most max_workers process calls run at once."""
    processor = ScriptedProcessor(latency=0.02)
    orchestrator = BatchOrchestrator(max_workers=max_workers, launch_delay=0)

    result = await orchestrator.run(make_items(10), processor)

    assert result.succeeded == 10
    assert processor.max_running == max_workers
    stats = await orchestrator.get_stats()
    assert stats["peak_running"] == max_workers
    assert stats["running"] == 0


@pytest.mark.asyncio
async def test_fewer_items_than_workers():
    """Test that the pool shrinks to the number of items."""
    metrics_events = []

    class WorkerCounter(BaseObserver):
        async def on_event(self, event, data):
            if event == ProcessingEvent.WORKER_STARTED:
                metrics_events.append(data["worker_id"])

    orchestrator = BatchOrchestrator(max_workers=8, launch_delay=0, observers=[WorkerCounter()])
    result = await orchestrator.run(make_items(3), ScriptedProcessor(latency=0))

    assert result.succeeded == 3
    assert sorted(metrics_events) == [0, 1, 2]


@pytest.mark.asyncio
async def test_launch_pacing():
    """Test that successive launches are at least launch_delay apart."""
    clock = FakeClock()
    recorder = LaunchRecorder()
    orchestrator = BatchOrchestrator(
        BatchConfig(max_workers=2, launch_delay=5.0),
        observers=[recorder],
        sleep=clock.sleep,
        clock=clock,
    )

    result = await orchestrator.run(make_items(4), ScriptedProcessor(latency=0))

    assert result.succeeded == 4
    times = [launched_at for _, launched_at in recorder.launches]
    assert times == sorted(times)
    assert all(later - earlier >= 5.0 for earlier, later in zip(times, times[1:]))
    assert times[0] == 0.0
    assert clock.total_slept == pytest.approx(15.0)


@pytest.mark.asyncio
async def test_skipped_items_do_not_consume_pacing():
    """Test that skipped items launch nothing and never wait for the pacing slot."""
    clock = FakeClock()
    orchestrator = BatchOrchestrator(
        BatchConfig(max_workers=1, launch_delay=5.0), sleep=clock.sleep, clock=clock
    )

    result = await orchestrator.run(
        make_items(4),
        ScriptedProcessor(latency=0),
        output_exists=lambda item: item.item_id != "item-3",
    )

    assert result.skipped == 3
    assert result.processed == 1
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_cancellation_marks_in_flight_and_pending_items():
    """Test that cancelling mid-run leaves every item terminal with kind 'cancelled'."""
    cancel_event = asyncio.Event()
    started = []

    async def process(item: WorkItem) -> str:
        started.append(item.item_id)
        if item.item_id == "item-1":
            cancel_event.set()
            await asyncio.sleep(10)
        return f"output-{item.item_id}"

    items = make_items(5)
    orchestrator = BatchOrchestrator(max_workers=1, launch_delay=0)
    result = await orchestrator.run(items, process, cancel_event=cancel_event)

    assert started == ["item-0", "item-1"]
    assert result.total == 5
    assert result.succeeded == 1
    assert result.failed == 4
    assert result.cancelled == 4
    assert [r.error_kind for r in result.results] == [None, "cancelled", "cancelled", "cancelled", "cancelled"]
    assert all(r.decision is None for r in result.results[1:])
    assert all(item.status.is_terminal for item in items)
    assert items[1].status is WorkItemStatus.FAILED


@pytest.mark.asyncio
async def test_cancellation_interrupts_pacing_wait():
    """Test that a pending launch delay is abandoned when the run is cancelled."""
    cancel_event = asyncio.Event()

    async def process(item: WorkItem) -> str:
        cancel_event.set()
        return "done"

    # Real sleep: the second launch would wait an hour without cancellation
    orchestrator = BatchOrchestrator(max_workers=2, launch_delay=3600)
    result = await asyncio.wait_for(
        orchestrator.run(make_items(3), process, cancel_event=cancel_event), timeout=5
    )

    assert result.succeeded == 1
    assert result.cancelled == 2


@pytest.mark.asyncio
async def test_cancel_before_start():
    """Test that an already-set event cancels everything without calling process."""
    cancel_event = asyncio.Event()
    cancel_event.set()
    processor = ScriptedProcessor(latency=0)

    result = await BatchOrchestrator(launch_delay=0).run(make_items(3), processor, cancel_event=cancel_event)

    assert processor.calls == []
    assert result.cancelled == 3


@pytest.mark.asyncio
async def test_concurrent_uploads_against_fake_api():
    """Test parallel uploads keep their files separate and all get cleaned up."""
    api = MockGeminiAPI(file_states=["PROCESSING", "ACTIVE"], latency=0.01)
    metrics = MetricsObserver()
    items = [
        WorkItem(
            item_id=f"clip-{i}",
            data=bytes([i]) * 64,
            mime_type="audio/wav",
            options=GenerationOptions(force_upload=True),
        )
        for i in range(6)
    ]

    async with api.client(ClientConfig(upload=UploadConfig(poll_interval=0.5)), observers=[metrics]) as client:
        result = await BatchOrchestrator(max_workers=3, launch_delay=0, observers=[metrics]).run(
            items, client.work_item_processor()
        )

    assert result.succeeded == 6
    assert sorted(api.deleted) == sorted(f"files/file-{i}" for i in range(1, 7))
    collected = await metrics.get_metrics()
    assert collected["files_uploaded"] == 6
    assert collected["bytes_uploaded"] == 6 * 64
    assert collected["items_succeeded"] == 6
