"""In-process metrics for webhook ingestion and analytics.

Counters and histograms are kept in memory per process and exposed on the
``/api/metrics`` endpoint.
"""

import threading
import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional

# Metric names
WEBHOOKS_RECEIVED = "webhooks_received"
WEBHOOKS_PROCESSED = "webhooks_processed"
WEBHOOKS_DUPLICATE_REPLIES = "webhooks_duplicate_replies"
WEBHOOKS_FAILED = "webhooks_failed"
WEBHOOK_ATTEMPTS = "webhook_attempts"
DELIVERY_DURATION_MS = "delivery_duration_ms"
ANALYTICS_QUERY_MS = "analytics_query_ms"


class MetricsCollector:
    """Thread-safe metrics collector.

    Webhook deliveries run in the server's worker threads, so every mutation
    happens under one re-entrant lock.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._counters: dict[str, float] = {}
        self._histograms: dict[str, list[float]] = {}

    def _make_key(self, name: str, labels: Optional[dict[str, str]] = None) -> str:
        if not labels:
            return name

        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"

    def increment(
        self,
        name: str,
        value: float = 1.0,
        labels: Optional[dict[str, str]] = None,
    ) -> None:
        """Increment a counter metric."""
        key = self._make_key(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + value

    def record_histogram(
        self,
        name: str,
        value: float,
        labels: Optional[dict[str, str]] = None,
    ) -> None:
        """Record a value in a histogram."""
        key = self._make_key(name, labels)
        with self._lock:
            self._histograms.setdefault(key, []).append(value)

    @contextmanager
    def timed(
        self,
        name: str,
        labels: Optional[dict[str, str]] = None,
    ) -> Iterator[None]:
        """Record the wall time of the block, in milliseconds, into a histogram."""
        started = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            self.record_histogram(name, elapsed_ms, labels)

    def get(
        self,
        name: str,
        labels: Optional[dict[str, str]] = None,
    ) -> float:
        """Get a counter value, 0 if never recorded."""
        key = self._make_key(name, labels)
        with self._lock:
            return self._counters.get(key, 0)

    def get_histogram_stats(self, key: str) -> dict[str, float]:
        """Get count/min/max/avg and percentiles for a histogram key."""
        with self._lock:
            values = list(self._histograms.get(key, []))

        if not values:
            return {"count": 0, "min": 0, "max": 0, "avg": 0}

        sorted_values = sorted(values)
        count = len(values)

        return {
            "count": count,
            "min": sorted_values[0],
            "max": sorted_values[-1],
            "avg": sum(values) / count,
            "p50": sorted_values[int(count * 0.5)],
            "p95": sorted_values[min(int(count * 0.95), count - 1)],
            "p99": sorted_values[min(int(count * 0.99), count - 1)],
        }

    def get_all(self) -> dict[str, Any]:
        """Snapshot every metric."""
        with self._lock:
            return {
                "counters": dict(self._counters),
                "histograms": {
                    k: self.get_histogram_stats(k)
                    for k in self._histograms.keys()
                },
            }

    def reset(self) -> None:
        """Drop all recorded values."""
        with self._lock:
            self._counters.clear()
            self._histograms.clear()


_collector = MetricsCollector()


def get_collector() -> MetricsCollector:
    """Get the process-wide metrics collector."""
    return _collector
