"""Domain models for POIs, clusters, matrices and tours."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..errors import AlgorithmDegeneracyWarning, UpstreamMatrixError


@dataclass(slots=True, frozen=True)
class Coordinate:
    """Geographic point in decimal degrees. Equality is exact and used as a lookup key."""

    latitude: float
    longitude: float


@dataclass(slots=True, frozen=True)
class PoiMetadata:
    category: Optional[str] = None
    sub_category: Optional[str] = None


@dataclass(slots=True, frozen=True)
class ClusterRecord:
    """Group of original POIs represented by the seed POI during search."""

    representative: Coordinate
    category: Optional[str]
    sub_category: Optional[str]
    clustered_ids: tuple[int, ...]


@dataclass(slots=True)
class ClusteringResult:
    pois: list[Coordinate]
    records: list[ClusterRecord]


@dataclass(slots=True)
class RouteMatrices:
    """Distance (meters) and duration (seconds) matrices aligned to a coordinate list."""

    distance: list[list[float]]
    duration: list[list[float]]

    @property
    def size(self) -> int:
        return len(self.distance)

    def validate(self, expected_size: int) -> None:
        for name, matrix in (("distance", self.distance), ("duration", self.duration)):
            if len(matrix) != expected_size:
                raise UpstreamMatrixError(
                    f"{name} matrix has {len(matrix)} rows, expected {expected_size}."
                )
            for row_index, row in enumerate(matrix):
                if len(row) != expected_size:
                    raise UpstreamMatrixError(
                        f"{name} matrix row {row_index} has {len(row)} columns, expected {expected_size}."
                    )


@dataclass(slots=True)
class Route:
    """A tour expanded back onto the original POIs.

    ``points`` holds every original POI exactly once in visiting order; the
    return leg to the start is implied by ``clustered_order`` and included in
    the aggregates. All durations are seconds, distances are meters.
    """

    points: list[Coordinate]
    original_indices: list[int]
    clustered_order: list[int]
    total_distance: float
    duration: float
    visit_time: float
    total_time: float
    algorithm: str
    variant: Optional[str] = None
    clusters: list[ClusterRecord] = field(default_factory=list)
    warnings: list[AlgorithmDegeneracyWarning] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class MetricEntry:
    algorithm_name: str
    node_count: int
    execution_time_ms: float
    timestamp: datetime
    variant: Optional[str] = None
    memory_usage_mb: Optional[float] = None
    route_distance: Optional[float] = None
    route_duration: Optional[float] = None
    route_visit_time: Optional[float] = None
    route_total_time: Optional[float] = None
    iterations: Optional[int] = None
    optimality: Optional[float] = None
