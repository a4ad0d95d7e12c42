"""In-process metrics: operation latency and batch-loader fan-in."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock

logger = logging.getLogger(__name__)


@dataclass
class LatencySummary:
    """Aggregated latency metrics for one operation."""

    count: int = 0
    error_count: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0


@dataclass
class BatchSummary:
    """Aggregated dispatch statistics for one loader name."""

    batches: int = 0
    keys: int = 0
    largest: int = 0


class _MetricsRecorder:
    def __init__(self) -> None:
        self._lock = Lock()
        self._latency: dict[str, LatencySummary] = {}
        self._batches: dict[str, BatchSummary] = {}

    def record_latency(self, operation: str, duration_ms: float, ok: bool) -> None:
        normalized = max(float(duration_ms), 0.0)
        with self._lock:
            summary = self._latency.setdefault(operation, LatencySummary())
            summary.count += 1
            if not ok:
                summary.error_count += 1
            summary.total_ms += normalized
            summary.max_ms = max(summary.max_ms, normalized)
        logger.debug(
            "latency operation=%s duration_ms=%.3f ok=%s", operation, normalized, ok
        )

    def record_batch(self, loader: str, size: int) -> None:
        with self._lock:
            summary = self._batches.setdefault(loader, BatchSummary())
            summary.batches += 1
            summary.keys += size
            summary.largest = max(summary.largest, size)

    def snapshot(self) -> dict[str, dict[str, dict[str, float | int]]]:
        with self._lock:
            return {
                "latency": {
                    op: {
                        "count": s.count,
                        "error_count": s.error_count,
                        "avg_ms": round(s.total_ms / s.count if s.count else 0.0, 3),
                        "max_ms": round(s.max_ms, 3),
                    }
                    for op, s in sorted(self._latency.items())
                },
                "batches": {
                    name: {"batches": s.batches, "keys": s.keys, "largest": s.largest}
                    for name, s in sorted(self._batches.items())
                },
            }

    def reset(self) -> None:
        with self._lock:
            self._latency.clear()
            self._batches.clear()


_RECORDER = _MetricsRecorder()


def record_latency(*, operation: str, duration_ms: float, ok: bool = True) -> None:
    """Record one latency sample."""
    _RECORDER.record_latency(operation, duration_ms, ok)


def record_batch(*, loader: str, size: int) -> None:
    """Record one batch dispatch of *size* distinct keys."""
    _RECORDER.record_batch(loader, size)


def metrics_snapshot() -> dict[str, dict[str, dict[str, float | int]]]:
    """Return current latency and batch aggregates."""
    return _RECORDER.snapshot()


def reset_metrics() -> None:
    """Clear all aggregates (test helper)."""
    _RECORDER.reset()
