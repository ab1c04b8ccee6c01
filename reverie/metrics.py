"""
Iteration statistics for the autonomy loop.

The loop records every finished iteration exactly once, with its outcome and
wall-clock duration, and reports interval changes as a gauge. Everything is
kept in-process and exported as a JSON-able snapshot; no metrics backend is
involved.

Usage:
    from reverie.metrics import metrics

    metrics.record_iteration(IterationOutcome.PUBLISHED, 2.04)
    metrics.snapshot()["counters"][THOUGHTS_PUBLISHED_TOTAL]
"""

from __future__ import annotations

import threading
from collections import Counter
from typing import Any

from reverie.types import IterationOutcome

ITERATIONS_TOTAL = "autonomy_iterations_total"
THOUGHTS_PUBLISHED_TOTAL = "autonomy_thoughts_published_total"
PUBLISH_FAILURES_TOTAL = "autonomy_publish_failures_total"
HARVEST_MISS_TOTAL = "autonomy_harvest_miss_total"
SUBMISSION_FAILURES_TOTAL = "autonomy_submission_failures_total"
ITERATION_ERRORS_TOTAL = "autonomy_iteration_errors_total"
UNBROADCAST_TOTAL = "autonomy_thoughts_unbroadcast_total"
ITERATION_SECONDS = "autonomy_iteration_seconds"
INTERVAL_MS = "autonomy_interval_ms"

_OUTCOME_COUNTERS: dict[IterationOutcome, str] = {
    IterationOutcome.PUBLISHED: THOUGHTS_PUBLISHED_TOTAL,
    IterationOutcome.PUBLISH_FAILED: PUBLISH_FAILURES_TOTAL,
    IterationOutcome.HARVEST_MISS: HARVEST_MISS_TOTAL,
    IterationOutcome.SUBMISSION_FAILED: SUBMISSION_FAILURES_TOTAL,
    IterationOutcome.FAILED: ITERATION_ERRORS_TOTAL,
    IterationOutcome.BROADCAST_DISABLED: UNBROADCAST_TOTAL,
}


class _Durations:
    """Count, total and extremes of iteration durations."""

    __slots__ = ("count", "total", "fastest", "slowest")

    def __init__(self) -> None:
        self.count = 0
        self.total = 0.0
        self.fastest = 0.0
        self.slowest = 0.0

    def add(self, seconds: float) -> None:
        self.fastest = seconds if not self.count else min(self.fastest, seconds)
        self.slowest = max(self.slowest, seconds)
        self.count += 1
        self.total += seconds

    def as_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "sum": round(self.total, 4),
            "avg": round(self.total / self.count, 4) if self.count else 0.0,
            "min": round(self.fastest, 4),
            "max": round(self.slowest, 4),
        }


class MetricsRegistry:
    """Per-outcome iteration counters, a duration summary, and the interval gauge.

    Skipped iterations never ran, so they are not recorded.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Counter[str] = Counter()
        self._durations = _Durations()
        self._interval_ms: float = 0.0

    def record_iteration(self, outcome: IterationOutcome, seconds: float) -> None:
        if outcome is IterationOutcome.SKIPPED:
            return
        with self._lock:
            self._counters[ITERATIONS_TOTAL] += 1
            self._counters[_OUTCOME_COUNTERS[outcome]] += 1
            self._durations.add(seconds)

    def set_interval(self, ms: float) -> None:
        with self._lock:
            self._interval_ms = ms

    def counter(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    @property
    def interval_ms(self) -> float:
        return self._interval_ms

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": {INTERVAL_MS: self._interval_ms},
                "histograms": {ITERATION_SECONDS: self._durations.as_dict()},
            }


metrics = MetricsRegistry()
