from __future__ import annotations

import time
from collections import defaultdict, deque
from contextlib import contextmanager
from typing import Deque, Dict, List

MetricsSnapshot = Dict[str, Dict[str, float]]


class DataLayerMetrics:
    """Counters and latency samples for cache and remote operations."""

    def __init__(self, percentile_window: int = 200) -> None:
        self._counts: Dict[str, int] = defaultdict(int)
        self._latency_sum: Dict[str, float] = defaultdict(float)
        self._latency_samples: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=percentile_window))
        self._counters: Dict[str, float] = defaultdict(float)

    def record(self, operation: str, duration_ms: float) -> None:
        self._counts[operation] += 1
        self._latency_sum[operation] += duration_ms
        self._latency_samples[operation].append(duration_ms)

    def increment_counter(self, name: str, amount: float = 1.0) -> None:
        self._counters[name] += amount

    def counter(self, name: str) -> float:
        return self._counters.get(name, 0.0)

    def snapshot(self) -> MetricsSnapshot:
        data: MetricsSnapshot = {}
        operations: Dict[str, Dict[str, float]] = {}
        for operation, count in self._counts.items():
            percentiles = _compute_percentiles(list(self._latency_samples[operation]))
            operations[operation] = {
                "count": float(count),
                "avg_latency_ms": (self._latency_sum[operation] / count) if count else 0.0,
                "p50_latency_ms": percentiles.get(50, 0.0),
                "p95_latency_ms": percentiles.get(95, 0.0),
            }
        if operations:
            data["operations"] = operations
        if self._counters:
            data["counters"] = dict(self._counters)
        return data

    def reset(self) -> None:
        self._counts.clear()
        self._latency_sum.clear()
        self._latency_samples.clear()
        self._counters.clear()


@contextmanager
def time_operation(metrics: DataLayerMetrics, operation: str):
    start = time.perf_counter()
    try:
        yield
    finally:
        metrics.record(operation, (time.perf_counter() - start) * 1000)


def _compute_percentiles(samples: List[float]) -> Dict[int, float]:
    if not samples:
        return {}
    ordered = sorted(samples)
    results: Dict[int, float] = {}
    for percentile in (50, 95):
        index = int(round((percentile / 100) * (len(ordered) - 1)))
        index = min(max(index, 0), len(ordered) - 1)
        results[percentile] = ordered[index]
    return results


_METRICS = DataLayerMetrics()


def get_metrics() -> DataLayerMetrics:
    return _METRICS
