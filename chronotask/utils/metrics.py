"""
Metrics Collection.

In-process counters and timers for occurrence spawning, ledger writes and
task summary delivery.
"""

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator


class MetricsCollector:
    """Collects and manages metrics for the temporal core."""

    def __init__(self):
        """Initialize metrics collector."""
        self.metrics = defaultdict(int)
        self.timers = defaultdict(float)
        self.lock = threading.Lock()

        # Initialize counters
        self.metrics["occurrences_spawned_total"] = 0
        self.metrics["series_terminated_total"] = 0
        self.metrics["ledger_events_total"] = 0
        self.metrics["summaries_sent_total"] = 0
        self.metrics["summaries_failed_total"] = 0

    def increment_counter(self, metric_name: str, value: int = 1):
        """Increment a counter metric."""
        with self.lock:
            self.metrics[metric_name] += value

    def record_timer(self, metric_name: str, duration: float):
        """Record a timing metric."""
        with self.lock:
            self.timers[metric_name] += duration

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics values."""
        with self.lock:
            return {
                "counters": dict(self.metrics),
                "timers": dict(self.timers),
                "timestamp": datetime.now(timezone.utc).isoformat()
            }

    def reset(self):
        with self.lock:
            for key in list(self.metrics):
                self.metrics[key] = 0
            self.timers.clear()

    def occurrence_spawned(self):
        self.increment_counter("occurrences_spawned_total")

    def series_terminated(self):
        self.increment_counter("series_terminated_total")

    def ledger_event_recorded(self):
        self.increment_counter("ledger_events_total")

    def summary_sent(self):
        self.increment_counter("summaries_sent_total")

    def summary_failed(self):
        self.increment_counter("summaries_failed_total")

    @contextmanager
    def time_operation(self, metric_name: str) -> Iterator[None]:
        """Context manager to time an operation."""
        start_time = time.monotonic()
        try:
            yield
        finally:
            self.record_timer(metric_name, time.monotonic() - start_time)


# Global metrics instance
metrics_collector = MetricsCollector()
