"""
In-memory observability metrics for the catalog engine.

Tracks:
- Latency percentiles (p50, p95, p99) per operation
- Request and error counts per operation
- Count aggregate sync failures per mutation
"""

import statistics
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Dict, Optional


class MetricsCollector:
    """
    In-memory metrics collector.

    For production, this would integrate with Prometheus/StatsD.
    """

    def __init__(self, window_size: int = 1000):
        """
        Initialize metrics collector.

        Args:
            window_size: Number of recent samples to keep for percentiles
        """
        self.window_size = window_size

        # Latency tracking (sliding window)
        self.latencies: Dict[str, deque] = defaultdict(lambda: deque(maxlen=window_size))

        self.request_counts: Dict[str, int] = defaultdict(int)
        self.error_counts: Dict[str, int] = defaultdict(int)

        # Counter drift signals; non-zero means a backfill is due
        self.aggregate_sync_failures: Dict[str, int] = defaultdict(int)

        self.start_time = datetime.now(timezone.utc)
        self.last_reset = self.start_time

    def record_latency(self, operation: str, latency_ms: float):
        """Record a latency sample for an operation."""
        self.latencies[operation].append(latency_ms)
        self.request_counts[operation] += 1

    def record_error(self, operation: str):
        """Record an error for an operation."""
        self.error_counts[operation] += 1

    def record_aggregate_sync_failure(self, mutation: str):
        """Record a counter update that failed alongside a committed product write."""
        self.aggregate_sync_failures[mutation] += 1

    def get_percentile(self, operation: str, percentile: float) -> Optional[float]:
        """
        Get a latency percentile for an operation.

        Returns:
            Latency in ms, or None if insufficient data
        """
        if operation not in self.latencies or len(self.latencies[operation]) == 0:
            return None

        values = sorted(self.latencies[operation])
        if len(values) < 10:  # Need at least 10 samples for meaningful percentiles
            return None

        index = int(len(values) * (percentile / 100.0))
        index = min(index, len(values) - 1)
        return values[index]

    def get_error_rate(self, operation: str) -> float:
        """Get the error rate for an operation as a percentage."""
        total_requests = self.request_counts[operation]
        if total_requests == 0:
            return 0.0
        return (self.error_counts[operation] / total_requests) * 100.0

    def get_summary(self) -> Dict:
        """Get a summary of all metrics."""
        uptime_seconds = (datetime.now(timezone.utc) - self.start_time).total_seconds()

        summary = {
            "uptime_seconds": uptime_seconds,
            "aggregate_sync_failures": dict(self.aggregate_sync_failures),
            "operations": {},
        }

        for operation in self.request_counts.keys():
            operation_metrics = {
                "total_requests": self.request_counts[operation],
                "total_errors": self.error_counts[operation],
                "error_rate_pct": round(self.get_error_rate(operation), 2),
            }

            for pct in (50, 95, 99):
                value = self.get_percentile(operation, pct)
                if value is not None:
                    operation_metrics[f"latency_p{pct}_ms"] = round(value, 2)

            if len(self.latencies[operation]) > 0:
                operation_metrics["latency_avg_ms"] = round(
                    statistics.mean(self.latencies[operation]), 2
                )

            summary["operations"][operation] = operation_metrics

        return summary

    def reset(self):
        """Reset all metrics (useful for testing)."""
        self.latencies.clear()
        self.request_counts.clear()
        self.error_counts.clear()
        self.aggregate_sync_failures.clear()
        self.last_reset = datetime.now(timezone.utc)


# Global metrics collector instance
metrics_collector = MetricsCollector()


def record_operation_metrics(operation: str, latency_ms: float, is_error: bool = False,
                             collector: Optional[MetricsCollector] = None):
    """
    Convenience function to record the metrics of one catalog operation.

    Args:
        operation: Operation name (e.g. "get_filtered_products", "create_product")
        latency_ms: Total operation latency in milliseconds
        is_error: Whether the operation raised
        collector: Collector to record into; defaults to the global one
    """
    collector = collector or metrics_collector
    collector.record_latency(operation, latency_ms)
    if is_error:
        collector.record_error(operation)
