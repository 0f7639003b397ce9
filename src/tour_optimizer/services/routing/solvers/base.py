"""Shared contract and pipeline for tour algorithms."""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from ....config import settings
from ....data.category_durations import CategoryDurationTable, load_category_durations
from ....errors import (
    AlgorithmDegeneracyWarning,
    AlgorithmError,
    ComplexityLimitExceeded,
    DeadlineExceeded,
    InsufficientPointsError,
    SolveCancelled,
    ValidationError,
)
from ....models.domain import ClusteringResult, Coordinate, PoiMetadata, Route
from ...clustering import ClusterMode, cluster_pois
from ...geospatial import path_metric
from ...metrics.recorder import Measurement, MetricsRecorder, get_metrics_recorder
from ..expansion import expand_route
from ..matrices import MatrixProvider, build_matrix_provider

logger = logging.getLogger(__name__)


class Algorithm(str, Enum):
    BACKTRACKING = "backtracking"
    BRANCH_AND_BOUND = "branch_and_bound"
    HELD_KARP = "held_karp"
    BITONIC = "bitonic"
    GRID_HEURISTIC = "grid_heuristic"
    ANT_COLONY = "ant_colony"
    GREEDY = "greedy"

    @classmethod
    def _missing_(cls, value: object) -> "Algorithm | None":
        aliases = {
            "ptas": cls.GRID_HEURISTIC,
            "dp": cls.HELD_KARP,
            "bab": cls.BRANCH_AND_BOUND,
            "bt": cls.BACKTRACKING,
            "aco": cls.ANT_COLONY,
        }
        if isinstance(value, str):
            return aliases.get(value.lower())
        return None


class Objective(str, Enum):
    DISTANCE = "distance"
    DURATION = "duration"
    TOTAL_TIME = "total_time"


class Deadline:
    """Cooperative time limit and cancellation flag checked by solver loops."""

    def __init__(self, seconds: float | None = None, cancel_event: threading.Event | None = None) -> None:
        self.seconds = seconds
        self.cancel_event = cancel_event
        self._expires_at = time.monotonic() + seconds if seconds is not None else None

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() > self._expires_at

    def check(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise SolveCancelled("Solve was cancelled by the caller.")
        if self.expired:
            raise DeadlineExceeded(f"Solver exceeded its time limit of {self.seconds:.1f}s.")


@dataclass(slots=True)
class TourProblem:
    """Clustered instance handed to an algorithm. Node 0 is the start."""

    coordinates: list[Coordinate]
    distance: list[list[float]]
    duration: list[list[float]]
    visit_seconds: list[float]
    deadline: Deadline = field(default_factory=Deadline)

    @property
    def size(self) -> int:
        return len(self.coordinates)

    def cost_matrix(self, objective: Objective) -> list[list[float]]:
        if objective is Objective.DISTANCE:
            return self.distance
        if objective is Objective.DURATION:
            return self.duration
        # Visit time is charged on arrival; returning to the start costs no visit.
        return [
            [self.duration[i][j] + (self.visit_seconds[j] if j != 0 else 0.0) for j in range(self.size)]
            for i in range(self.size)
        ]


@dataclass(slots=True)
class TourSolution:
    order: list[int]
    iterations: Optional[int] = None
    optimality: Optional[float] = None
    warnings: list[AlgorithmDegeneracyWarning] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)


class TourSolver(ABC):
    """Contract for tour algorithm implementations.

    ``solve`` runs the shared pipeline (validation, clustering, matrices,
    evaluation, expansion, metrics); subclasses only implement
    :meth:`build_tour` over the clustered problem.
    """

    algorithm: Algorithm
    label: str

    def __init__(
        self,
        *,
        provider: MatrixProvider | None = None,
        recorder: MetricsRecorder | None = None,
        durations: CategoryDurationTable | None = None,
        time_limit_seconds: float | None = None,
        max_nodes: int | None = None,
        cluster_mode: ClusterMode = ClusterMode.SEED,
    ) -> None:
        self.provider = provider if provider is not None else build_matrix_provider()
        self.recorder = recorder if recorder is not None else get_metrics_recorder()
        self.durations = durations if durations is not None else load_category_durations()
        self.time_limit_seconds = (
            time_limit_seconds if time_limit_seconds is not None else settings.solver_time_limit_seconds
        )
        self.max_nodes = max_nodes if max_nodes is not None else self.default_max_nodes()
        self.cluster_mode = cluster_mode

    @classmethod
    def default_max_nodes(cls) -> int | None:
        return None

    @property
    def variant(self) -> str | None:
        return None

    @abstractmethod
    def build_tour(self, problem: TourProblem) -> TourSolution:
        """Return a closed visiting order over ``problem`` starting and ending at node 0."""
        raise NotImplementedError

    def solve(
        self,
        pois: Sequence[Coordinate],
        metadata: Sequence[PoiMetadata] | None = None,
        max_cluster_distance: float | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> Route:
        pois = list(pois)
        with self.recorder.measure(self.label, node_count=len(pois), variant=self.variant) as measurement:
            route = self._solve(pois, metadata, max_cluster_distance, cancel_event, measurement)
            measurement.route = route
        logger.info(
            f"{self.label} solved {len(pois)} POIs ({len(route.clusters)} clustered): "
            f"distance={route.total_distance:.0f}m total_time={route.total_time:.0f}s"
        )
        return route

    def _solve(
        self,
        pois: list[Coordinate],
        metadata: Sequence[PoiMetadata] | None,
        max_cluster_distance: float | None,
        cancel_event: threading.Event | None,
        measurement: Measurement,
    ) -> Route:
        if len(pois) < 2:
            raise InsufficientPointsError(len(pois))
        if metadata is not None and len(metadata) != len(pois):
            raise ValidationError(
                f"Metadata has {len(metadata)} entries but {len(pois)} POIs were supplied."
            )

        cluster_distance = (
            max_cluster_distance if max_cluster_distance is not None else settings.default_cluster_distance_m
        )
        clustering = cluster_pois(pois, cluster_distance, metadata, mode=self.cluster_mode)
        n = len(clustering.pois)
        if self.max_nodes is not None and n > self.max_nodes:
            raise ComplexityLimitExceeded(self.label, n, self.max_nodes)

        matrices = self.provider.get_route_matrices(clustering.pois)
        matrices.validate(n)

        problem = TourProblem(
            coordinates=clustering.pois,
            distance=matrices.distance,
            duration=matrices.duration,
            visit_seconds=self._visit_seconds(clustering, metadata),
            deadline=Deadline(self.time_limit_seconds, cancel_event),
        )

        if n == 2:
            solution = TourSolution(order=[0, 1], iterations=1, optimality=1.0)
        else:
            solution = self.build_tour(problem)
            self._check_order(solution.order, n)

        for warning in solution.warnings:
            logger.warning(f"{self.label}: {warning}")

        order = solution.order
        total_distance = path_metric(order, problem.distance)
        duration = path_metric(order, problem.duration)
        visit_time = sum(problem.visit_seconds[index] for index in set(order))
        points, original_indices = expand_route(order, clustering.records, pois)

        measurement.iterations = solution.iterations
        measurement.optimality = solution.optimality
        return Route(
            points=points,
            original_indices=original_indices,
            clustered_order=list(order),
            total_distance=total_distance,
            duration=duration,
            visit_time=visit_time,
            total_time=duration + visit_time,
            algorithm=self.algorithm.value,
            variant=self.variant,
            clusters=list(clustering.records),
            warnings=list(solution.warnings),
            metadata=dict(solution.metadata),
        )

    def _visit_seconds(
        self, clustering: ClusteringResult, metadata: Sequence[PoiMetadata] | None
    ) -> list[float]:
        visit_seconds = [0.0]
        for record in clustering.records[1:]:
            visit_seconds.append(
                sum(
                    self.durations.for_metadata(metadata[index] if metadata is not None else None)
                    for index in record.clustered_ids
                )
            )
        return visit_seconds

    def _check_order(self, order: Sequence[int], size: int) -> None:
        if len(order) != size + 1 or order[0] != 0 or order[-1] != 0 or sorted(order[:-1]) != list(range(size)):
            raise AlgorithmError(f"{self.label} produced an invalid tour {list(order)} for {size} nodes.")
