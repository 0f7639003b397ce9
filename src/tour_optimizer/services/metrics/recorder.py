"""Append-only log of algorithm run statistics."""

from __future__ import annotations

import csv
import io
import logging
import threading
import time
import tracemalloc
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Iterator, Optional, Sequence

from ...config import settings
from ...models.domain import MetricEntry, Route

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "algorithm",
    "variant",
    "node_count",
    "execution_time_ms",
    "memory_usage_mb",
    "route_distance",
    "route_duration",
    "route_visit_time",
    "route_total_time",
    "iterations",
    "optimality",
    "timestamp",
]


@dataclass(slots=True)
class Measurement:
    """Mutable collector filled in while a measured run is in flight."""

    route: Optional[Route] = None
    iterations: Optional[int] = None
    optimality: Optional[float] = None
    extra: dict = field(default_factory=dict)


def _blank(value: object) -> object:
    return "" if value is None else value


# tracemalloc is process-wide; tracing started here stays on until the last
# overlapping measurement that needs it has finished.
_tracing_lock = threading.Lock()
_tracing_users = 0
_tracing_owned = False


def _acquire_tracing() -> None:
    global _tracing_users, _tracing_owned
    with _tracing_lock:
        if _tracing_users == 0 and not tracemalloc.is_tracing():
            tracemalloc.start()
            _tracing_owned = True
        _tracing_users += 1


def _release_tracing() -> None:
    global _tracing_users, _tracing_owned
    with _tracing_lock:
        _tracing_users -= 1
        if _tracing_users == 0 and _tracing_owned:
            tracemalloc.stop()
            _tracing_owned = False


class MetricsRecorder:
    """Thread-safe, append-only store of :class:`MetricEntry` records."""

    def __init__(self, *, track_memory: bool | None = None) -> None:
        self.track_memory = settings.metrics_track_memory if track_memory is None else track_memory
        self._entries: list[MetricEntry] = []
        self._lock = threading.Lock()

    def record(self, entry: MetricEntry) -> None:
        with self._lock:
            self._entries.append(entry)
        logger.debug(
            f"Recorded metric {entry.algorithm_name} ({entry.variant or 'default'}) "
            f"n={entry.node_count} in {entry.execution_time_ms:.2f}ms"
        )

    def get_all(self) -> list[MetricEntry]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def by_algorithm(self, algorithm_name: str) -> list[MetricEntry]:
        return [entry for entry in self.get_all() if entry.algorithm_name == algorithm_name]

    def by_node_count(self, node_count: int) -> list[MetricEntry]:
        return [entry for entry in self.get_all() if entry.node_count == node_count]

    def comparison(self, node_count: int, algorithms: Sequence[str]) -> list[MetricEntry]:
        wanted = set(algorithms)
        return [
            entry
            for entry in self.get_all()
            if entry.node_count == node_count and entry.algorithm_name in wanted
        ]

    def deduplicated(self) -> list[MetricEntry]:
        """Latest entry per (algorithm, variant, node count). The log itself is left untouched."""
        latest: dict[tuple[str, str, int], MetricEntry] = {}
        for entry in self.get_all():
            key = (entry.algorithm_name, entry.variant or "default", entry.node_count)
            existing = latest.get(key)
            if existing is None or entry.timestamp >= existing.timestamp:
                latest[key] = entry
        return list(latest.values())

    def summary(self) -> dict:
        counts: dict[str, int] = {}
        time_sums: dict[str, float] = {}
        entries = self.get_all()
        for entry in entries:
            key = f"{entry.algorithm_name}_{entry.variant}" if entry.variant else entry.algorithm_name
            counts[key] = counts.get(key, 0) + 1
            time_sums[key] = time_sums.get(key, 0.0) + entry.execution_time_ms
        return {
            "total_runs": len(entries),
            "algorithm_counts": counts,
            "avg_execution_time_ms": {key: time_sums[key] / counts[key] for key in counts},
        }

    def export_csv(self) -> str:
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, lineterminator="\n")
        writer.writeheader()
        for entry in self.get_all():
            writer.writerow(
                {
                    "algorithm": entry.algorithm_name,
                    "variant": _blank(entry.variant),
                    "node_count": entry.node_count,
                    "execution_time_ms": entry.execution_time_ms,
                    "memory_usage_mb": _blank(entry.memory_usage_mb),
                    "route_distance": _blank(entry.route_distance),
                    "route_duration": _blank(entry.route_duration),
                    "route_visit_time": _blank(entry.route_visit_time),
                    "route_total_time": _blank(entry.route_total_time),
                    "iterations": _blank(entry.iterations),
                    "optimality": _blank(entry.optimality),
                    "timestamp": entry.timestamp.isoformat(),
                }
            )
        return buffer.getvalue()

    @contextmanager
    def measure(
        self,
        algorithm_name: str,
        *,
        node_count: int,
        variant: str | None = None,
    ) -> Iterator[Measurement]:
        """Time the enclosed block and record an entry even if it raises."""

        measurement = Measurement()
        if self.track_memory:
            _acquire_tracing()
        memory_before = tracemalloc.get_traced_memory()[0] if self.track_memory else 0
        start = time.perf_counter()
        try:
            yield measurement
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000.0
            memory_mb: float | None = None
            if self.track_memory:
                memory_after = tracemalloc.get_traced_memory()[0]
                memory_mb = round((memory_after - memory_before) / (1024 * 1024), 2)
                _release_tracing()

            route = measurement.route
            self.record(
                MetricEntry(
                    algorithm_name=algorithm_name,
                    variant=variant,
                    node_count=node_count,
                    execution_time_ms=elapsed_ms,
                    memory_usage_mb=memory_mb,
                    route_distance=route.total_distance if route else None,
                    route_duration=route.duration if route else None,
                    route_visit_time=route.visit_time if route else None,
                    route_total_time=route.total_time if route else None,
                    iterations=measurement.iterations,
                    optimality=measurement.optimality,
                    timestamp=datetime.now(timezone.utc),
                )
            )


@lru_cache(maxsize=1)
def get_metrics_recorder() -> MetricsRecorder:
    """Process-wide recorder used when callers do not inject their own."""
    return MetricsRecorder()
