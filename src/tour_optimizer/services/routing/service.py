"""Tour orchestration service."""

from __future__ import annotations

import logging
from typing import Sequence

from ...models.domain import Coordinate, PoiMetadata, Route
from ...persistence.filesystem import FileStorage
from ...schemas.metrics import MetricEntryModel, MetricsResponse
from ...schemas.routing import (
    BitonicComparisonResponse,
    ClusterModel,
    CoordinateModel,
    TourRequest,
    TourResponse,
)
from ..metrics.recorder import MetricsRecorder, get_metrics_recorder
from ..outputs.tour_formatter import route_to_csv, route_to_json
from .matrices import CachingMatrixProvider, MatrixProvider, build_matrix_provider
from .solvers.base import Algorithm
from .solvers.bitonic import SortStrategy
from .solvers.dispatcher import get_solver

logger = logging.getLogger(__name__)


def _split_pois(payload: TourRequest) -> tuple[list[Coordinate], list[PoiMetadata]]:
    coordinates = [Coordinate(poi.latitude, poi.longitude) for poi in payload.pois]
    metadata = [PoiMetadata(poi.category, poi.sub_category) for poi in payload.pois]
    return coordinates, metadata


def _run(
    payload: TourRequest,
    algorithm: str | Algorithm,
    provider: MatrixProvider,
    recorder: MetricsRecorder,
    **overrides,
) -> Route:
    options = payload.parameters.model_dump(exclude_none=True)
    options.update(overrides)
    solver = get_solver(
        algorithm,
        provider=provider,
        recorder=recorder,
        cluster_mode=payload.cluster_mode,
        **options,
    )
    coordinates, metadata = _split_pois(payload)
    return solver.solve(coordinates, metadata, payload.max_cluster_distance)


def _to_response(route: Route, output_dir: str | None = None) -> TourResponse:
    return TourResponse(
        algorithm=route.algorithm,
        variant=route.variant,
        points=[CoordinateModel(latitude=p.latitude, longitude=p.longitude) for p in route.points],
        original_indices=route.original_indices,
        clustered_order=route.clustered_order,
        total_distance_m=route.total_distance,
        duration_s=route.duration,
        visit_time_s=route.visit_time,
        total_time_s=route.total_time,
        clusters=[
            ClusterModel(
                representative=CoordinateModel(
                    latitude=record.representative.latitude,
                    longitude=record.representative.longitude,
                ),
                category=record.category,
                sub_category=record.sub_category,
                clustered_ids=list(record.clustered_ids),
            )
            for record in route.clusters
        ],
        warnings=[str(warning) for warning in route.warnings],
        metadata=route.metadata,
        output_dir=output_dir,
    )


def _persist(
    payload: TourRequest,
    route: Route,
    recorder: MetricsRecorder,
    storage: FileStorage | None,
) -> str | None:
    if not payload.persist:
        return None
    storage = storage if storage is not None else FileStorage()
    label = payload.run_label or route.algorithm
    prefix = f"tour_{label}_{route.variant}" if route.variant else f"tour_{label}"
    run = storage.save_run(
        prefix,
        route=route_to_json(route),
        route_csv=route_to_csv(route),
        metrics_csv=recorder.export_csv(),
    )
    logger.info(f"Persisted {route.algorithm} tour outputs to {run.directory}")
    return str(run.directory)


def optimize_tour(
    payload: TourRequest,
    *,
    provider: MatrixProvider | None = None,
    recorder: MetricsRecorder | None = None,
    storage: FileStorage | None = None,
) -> TourResponse:
    provider = provider if provider is not None else build_matrix_provider()
    recorder = recorder if recorder is not None else get_metrics_recorder()
    route = _run(payload, payload.algorithm, provider, recorder)
    return _to_response(route, _persist(payload, route, recorder, storage))


def compare_algorithms(
    payload: TourRequest,
    algorithms: Sequence[str | Algorithm],
    *,
    provider: MatrixProvider | None = None,
    recorder: MetricsRecorder | None = None,
    storage: FileStorage | None = None,
) -> dict[str, TourResponse]:
    """Run several algorithms on one input. The matrix is fetched once and shared."""

    shared = CachingMatrixProvider(provider if provider is not None else build_matrix_provider())
    recorder = recorder if recorder is not None else get_metrics_recorder()
    responses: dict[str, TourResponse] = {}
    for algorithm in algorithms:
        route = _run(payload, algorithm, shared, recorder)
        responses[route.algorithm] = _to_response(route, _persist(payload, route, recorder, storage))
    return responses


def compare_bitonic_strategies(
    payload: TourRequest,
    strategies: Sequence[SortStrategy] | None = None,
    *,
    provider: MatrixProvider | None = None,
    recorder: MetricsRecorder | None = None,
    storage: FileStorage | None = None,
) -> BitonicComparisonResponse:
    """Run the bitonic solver once per ordering and pick the one with the lowest total time."""

    shared = CachingMatrixProvider(provider if provider is not None else build_matrix_provider())
    recorder = recorder if recorder is not None else get_metrics_recorder()
    selected = [SortStrategy(strategy) for strategy in (strategies or list(SortStrategy))]

    results: dict[str, TourResponse] = {}
    best_strategy = selected[0]
    best_total = float("inf")
    for strategy in selected:
        route = _run(payload, Algorithm.BITONIC, shared, recorder, sort_strategy=strategy)
        results[strategy.value] = _to_response(route, _persist(payload, route, recorder, storage))
        if route.total_time < best_total:
            best_total = route.total_time
            best_strategy = strategy
    logger.info(f"Best bitonic ordering: {best_strategy.value} ({best_total:.0f}s)")
    return BitonicComparisonResponse(best_strategy=best_strategy, results=results)


def metrics_snapshot(recorder: MetricsRecorder | None = None, *, deduplicate: bool = False) -> MetricsResponse:
    recorder = recorder if recorder is not None else get_metrics_recorder()
    entries = recorder.deduplicated() if deduplicate else recorder.get_all()
    summary = recorder.summary()
    return MetricsResponse(
        total_runs=summary["total_runs"],
        algorithm_counts=summary["algorithm_counts"],
        avg_execution_time_ms=summary["avg_execution_time_ms"],
        entries=[
            MetricEntryModel(
                algorithm_name=entry.algorithm_name,
                variant=entry.variant,
                node_count=entry.node_count,
                execution_time_ms=entry.execution_time_ms,
                memory_usage_mb=entry.memory_usage_mb,
                route_distance=entry.route_distance,
                route_duration=entry.route_duration,
                route_visit_time=entry.route_visit_time,
                route_total_time=entry.route_total_time,
                iterations=entry.iterations,
                optimality=entry.optimality,
                timestamp=entry.timestamp,
            )
            for entry in entries
        ],
    )
