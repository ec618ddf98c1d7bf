"""Metrics collection observer."""

import asyncio
import json
from typing import Any

from .base import BaseObserver, ProcessingEvent

METRIC_PREFIX = "media_batch"


class MetricsObserver(BaseObserver):
    """Collect metrics for monitoring (safe to share across workers)."""

    def __init__(self):
        """Initialize metrics collector."""
        self.metrics = {
            "items_processed": 0,
            "items_succeeded": 0,
            "items_failed": 0,
            "items_skipped": 0,
            "rate_limits_hit": 0,
            "retries_scheduled": 0,
            "total_backoff_time": 0.0,
            "files_uploaded": 0,
            "bytes_uploaded": 0,
            "processing_times": [],
            "error_counts": {},
        }
        self._lock = asyncio.Lock()

    async def on_event(
        self,
        event: ProcessingEvent,
        data: dict[str, Any],
    ) -> None:
        """Collect metrics from events."""
        async with self._lock:
            if event == ProcessingEvent.ITEM_COMPLETED:
                self.metrics["items_processed"] += 1
                self.metrics["items_succeeded"] += 1
                if "duration" in data:
                    self.metrics["processing_times"].append(data["duration"])

            elif event == ProcessingEvent.ITEM_FAILED:
                self.metrics["items_processed"] += 1
                self.metrics["items_failed"] += 1
                if "error_kind" in data:
                    error_kind = data["error_kind"]
                    self.metrics["error_counts"][error_kind] = (
                        self.metrics["error_counts"].get(error_kind, 0) + 1
                    )

            elif event == ProcessingEvent.ITEM_SKIPPED:
                self.metrics["items_skipped"] += 1

            elif event == ProcessingEvent.RATE_LIMIT_HIT:
                self.metrics["rate_limits_hit"] += 1

            elif event == ProcessingEvent.RETRY_SCHEDULED:
                self.metrics["retries_scheduled"] += 1
                if "delay" in data:
                    self.metrics["total_backoff_time"] += data["delay"]

            elif event == ProcessingEvent.UPLOAD_COMPLETED:
                self.metrics["files_uploaded"] += 1
                self.metrics["bytes_uploaded"] += data.get("size_bytes", 0)

    async def get_metrics(self) -> dict[str, Any]:
        """Get collected metrics with computed statistics."""
        async with self._lock:
            processing_times = self.metrics["processing_times"]
            return {
                **self.metrics,
                "processing_times": list(processing_times),
                "error_counts": dict(self.metrics["error_counts"]),
                "avg_processing_time": (
                    sum(processing_times) / len(processing_times) if processing_times else 0
                ),
                "success_rate": (
                    self.metrics["items_succeeded"] / self.metrics["items_processed"]
                    if self.metrics["items_processed"] > 0
                    else 0
                ),
            }

    def reset(self) -> None:
        """Reset all metrics."""
        self.__init__()

    async def export_json(self) -> str:
        """Export metrics as JSON string.

        Returns:
            JSON string containing all metrics and computed statistics
        """
        metrics = await self.get_metrics()
        export_data = {
            **metrics,
            "processing_times_count": len(metrics.get("processing_times", [])),
        }
        export_data.pop("processing_times", None)
        return json.dumps(export_data, indent=2)

    async def export_prometheus(self) -> str:
        """Export metrics in Prometheus text format.

        Returns:
            Prometheus-formatted metrics string

        Example:
            >>> observer = MetricsObserver()
            >>> # ... run a batch ...
            >>> prom_text = await observer.export_prometheus()
            >>> print(prom_text)
            # HELP media_batch_items_processed Total items processed
            # TYPE media_batch_items_processed counter
            media_batch_items_processed 12
            ...
        """
        metrics = await self.get_metrics()

        lines = []

        counters = [
            ("items_processed", "Total items processed"),
            ("items_succeeded", "Total items succeeded"),
            ("items_failed", "Total items failed"),
            ("items_skipped", "Total items skipped because output already existed"),
            ("rate_limits_hit", "Total rate limits encountered"),
            ("retries_scheduled", "Total retries scheduled"),
            ("files_uploaded", "Total files uploaded with the resumable protocol"),
            ("bytes_uploaded", "Total bytes uploaded with the resumable protocol"),
        ]

        for metric_name, help_text in counters:
            lines.append(f"# HELP {METRIC_PREFIX}_{metric_name} {help_text}")
            lines.append(f"# TYPE {METRIC_PREFIX}_{metric_name} counter")
            lines.append(f"{METRIC_PREFIX}_{metric_name} {metrics.get(metric_name, 0)}")
            lines.append("")

        gauges = [
            ("avg_processing_time", "Average processing time in seconds"),
            ("success_rate", "Success rate (0.0 to 1.0)"),
            ("total_backoff_time", "Total time spent sleeping before retries (seconds)"),
        ]

        for metric_name, help_text in gauges:
            lines.append(f"# HELP {METRIC_PREFIX}_{metric_name} {help_text}")
            lines.append(f"# TYPE {METRIC_PREFIX}_{metric_name} gauge")
            lines.append(f"{METRIC_PREFIX}_{metric_name} {metrics.get(metric_name, 0)}")
            lines.append("")

        error_counts = metrics.get("error_counts", {})
        if error_counts:
            lines.append(f"# HELP {METRIC_PREFIX}_errors_total Total errors by kind")
            lines.append(f"# TYPE {METRIC_PREFIX}_errors_total counter")
            for error_kind, count in error_counts.items():
                safe_kind = error_kind.replace('"', '\\"')
                lines.append(f'{METRIC_PREFIX}_errors_total{{error_kind="{safe_kind}"}} {count}')
            lines.append("")

        return "\n".join(lines)
