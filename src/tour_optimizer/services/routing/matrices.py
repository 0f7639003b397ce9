"""Matrix provider contract and offline providers."""

from __future__ import annotations

import logging
import threading
from typing import Protocol, Sequence

from ...config import settings
from ...errors import ConfigurationError, UpstreamMatrixError
from ...models.domain import Coordinate, RouteMatrices
from ..geospatial import distance_between

logger = logging.getLogger(__name__)


class MatrixProvider(Protocol):
    def get_route_matrices(self, coordinates: Sequence[Coordinate]) -> RouteMatrices:
        """Return distance (m) and duration (s) matrices for ``coordinates`` (at least two)."""


def _require_two(coordinates: Sequence[Coordinate]) -> None:
    if len(coordinates) < 2:
        raise UpstreamMatrixError("At least two coordinates are required for matrix calculation.")


class HaversineMatrixProvider:
    """Great-circle distances with a constant-speed duration estimate."""

    def __init__(self, average_speed_kmh: float | None = None) -> None:
        self.average_speed_kmh = average_speed_kmh or settings.haversine_average_speed_kmh

    def get_route_matrices(self, coordinates: Sequence[Coordinate]) -> RouteMatrices:
        _require_two(coordinates)
        n = len(coordinates)
        meters_per_second = self.average_speed_kmh * 1000.0 / 3600.0
        distances = [[0.0] * n for _ in range(n)]
        durations = [[0.0] * n for _ in range(n)]
        for i in range(n):
            for j in range(n):
                if i == j:
                    continue
                distance = distance_between(coordinates[i], coordinates[j])
                distances[i][j] = distance
                durations[i][j] = distance / meters_per_second
        logger.debug(f"Computed haversine matrices for {n} coordinates")
        return RouteMatrices(distance=distances, duration=durations)


class StaticMatrixProvider:
    """Serves precomputed matrices, e.g. recorded provider responses or test fixtures."""

    def __init__(self, distance: Sequence[Sequence[float]], duration: Sequence[Sequence[float]] | None = None) -> None:
        self.distance = [list(row) for row in distance]
        self.duration = [list(row) for row in (duration if duration is not None else distance)]
        self.calls: list[list[Coordinate]] = []

    def get_route_matrices(self, coordinates: Sequence[Coordinate]) -> RouteMatrices:
        _require_two(coordinates)
        self.calls.append(list(coordinates))
        n = len(coordinates)
        if len(self.distance) < n:
            raise UpstreamMatrixError(
                f"Static matrices cover {len(self.distance)} locations, {n} were requested."
            )
        return RouteMatrices(
            distance=[row[:n] for row in self.distance[:n]],
            duration=[row[:n] for row in self.duration[:n]],
        )


class CachingMatrixProvider:
    """Memoizes another provider by the exact coordinate sequence."""

    def __init__(self, inner: MatrixProvider) -> None:
        self.inner = inner
        self._cache: dict[tuple[Coordinate, ...], RouteMatrices] = {}
        self._lock = threading.Lock()

    def get_route_matrices(self, coordinates: Sequence[Coordinate]) -> RouteMatrices:
        key = tuple(coordinates)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached
        matrices = self.inner.get_route_matrices(coordinates)
        with self._lock:
            self._cache[key] = matrices
        return matrices

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


def build_matrix_provider(name: str | None = None) -> MatrixProvider:
    provider = name or settings.matrix_provider
    match provider:
        case "openrouteservice":
            from .matrix_client import OpenRouteServiceClient

            return OpenRouteServiceClient()
        case "haversine":
            return HaversineMatrixProvider()
        case _:
            raise ConfigurationError(f"Unknown matrix provider '{provider}'.")
