import itertools
import math
import threading

import numpy as np
import pytest

from tour_optimizer.data.category_durations import CategoryDurationTable
from tour_optimizer.errors import (
    AlgorithmError,
    ComplexityLimitExceeded,
    DeadlineExceeded,
    InsufficientPointsError,
    SolveCancelled,
    UpstreamMatrixError,
    ValidationError,
)
from tour_optimizer.models.domain import Coordinate, PoiMetadata
from tour_optimizer.services.geospatial import path_metric
from tour_optimizer.services.metrics.recorder import MetricsRecorder
from tour_optimizer.services.routing.matrices import HaversineMatrixProvider, StaticMatrixProvider
from tour_optimizer.services.routing.solvers import (
    Algorithm,
    BacktrackingSolver,
    BranchAndBoundSolver,
    GreedySolver,
    GridHeuristicSolver,
    HeldKarpSolver,
    Objective,
    TourSolution,
    TourSolver,
    get_solver,
)
from tour_optimizer.services.routing.solvers.branch_and_bound import lower_bound


def _scattered(n: int, seed: int = 7) -> list[Coordinate]:
    rng = np.random.default_rng(seed)
    return [Coordinate(float(lat), float(lon)) for lat, lon in rng.uniform(0.0, 0.05, size=(n, 2))]


def _grid(rows: int, cols: int, spacing: float = 0.005) -> list[Coordinate]:
    return [Coordinate(r * spacing, c * spacing) for r in range(rows) for c in range(cols)]


def _durations(default_minutes: float = 30.0, table: dict | None = None) -> CategoryDurationTable:
    return CategoryDurationTable(table or {}, default_minutes=default_minutes)


def _solver(cls, provider=None, **kwargs):
    return cls(
        provider=provider or HaversineMatrixProvider(),
        recorder=kwargs.pop("recorder", MetricsRecorder(track_memory=False)),
        durations=kwargs.pop("durations", _durations()),
        **kwargs,
    )


def _brute_force(cost: list[list[float]]) -> float:
    n = len(cost)
    return min(
        path_metric([0, *perm, 0], cost) for perm in itertools.permutations(range(1, n))
    )


@pytest.mark.parametrize("algorithm", list(Algorithm))
def test_every_poi_appears_exactly_once(algorithm):
    pois = _scattered(8)
    # A near-duplicate of an interior POI gets clustered with it.
    pois.insert(4, Coordinate(pois[3].latitude + 0.0001, pois[3].longitude))
    solver = get_solver(
        algorithm,
        provider=HaversineMatrixProvider(),
        recorder=MetricsRecorder(track_memory=False),
        durations=_durations(),
        iterations=10,
        seed=1,
    )

    route = solver.solve(pois)

    assert sorted(route.original_indices) == list(range(len(pois)))
    assert route.points == [pois[i] for i in route.original_indices]
    assert route.original_indices[0] == 0
    assert route.clustered_order[0] == route.clustered_order[-1] == 0
    assert route.total_time == pytest.approx(route.duration + route.visit_time)


@pytest.mark.parametrize("algorithm", list(Algorithm))
def test_two_points_give_an_open_path(algorithm):
    pois = [Coordinate(0.0, 0.0), Coordinate(0.0, 0.02)]
    provider = StaticMatrixProvider([[0, 500], [700, 0]], [[0, 60], [90, 0]])
    solver = get_solver(
        algorithm,
        provider=provider,
        recorder=MetricsRecorder(track_memory=False),
        durations=_durations(),
    )

    route = solver.solve(pois)

    assert route.clustered_order == [0, 1]
    assert route.original_indices == [0, 1]
    assert route.total_distance == 500
    assert route.duration == 60
    assert route.visit_time == 1800
    assert route.total_time == 1860


def test_unit_square_held_karp_perimeter():
    side, diagonal = 1000, 1414
    pois = [Coordinate(0.0, 0.0), Coordinate(0.0, 0.01), Coordinate(0.01, 0.01), Coordinate(0.01, 0.0)]
    provider = StaticMatrixProvider(
        [
            [0, side, diagonal, side],
            [side, 0, side, diagonal],
            [diagonal, side, 0, side],
            [side, diagonal, side, 0],
        ]
    )

    route = _solver(HeldKarpSolver, provider).solve(pois)

    assert route.total_distance == 4000
    assert route.clustered_order in ([0, 1, 2, 3, 0], [0, 3, 2, 1, 0])


def test_museum_art_adds_forty_five_minutes():
    pois = [Coordinate(0.0, 0.0), Coordinate(0.0, 0.01), Coordinate(0.0, 0.02)]
    metadata = [PoiMetadata(), PoiMetadata("museum", "art"), PoiMetadata()]
    durations = _durations(0.0, {"museum": {"art": {"duration": 45, "unit": "minutes"}}})

    route = _solver(GreedySolver, durations=durations).solve(pois, metadata)

    assert route.visit_time == 45 * 60


def test_clustered_visit_time_sums_members():
    base = Coordinate(0.0, 0.0)
    pois = [base, Coordinate(0.0, 0.01), Coordinate(0.0, 0.0101), Coordinate(0.0, 0.03)]

    route = _solver(GreedySolver).solve(pois)

    assert len(route.clusters) == 3
    # Two clustered members plus the end POI, 30 minutes each.
    assert route.visit_time == 3 * 1800


def test_exact_solvers_never_lose_to_greedy():
    pois = _scattered(9, seed=11)
    greedy = _solver(GreedySolver).solve(pois)
    held_karp = _solver(HeldKarpSolver).solve(pois)
    branch = _solver(BranchAndBoundSolver).solve(pois)
    backtracking = _solver(BacktrackingSolver).solve(pois)

    assert held_karp.total_distance <= greedy.total_distance + 1e-6
    assert branch.total_distance <= greedy.total_distance + 1e-6
    assert backtracking.total_distance == pytest.approx(held_karp.total_distance)


def test_exact_solvers_agree_on_asymmetric_matrix():
    rng = np.random.default_rng(3)
    duration = rng.integers(60, 900, size=(6, 6)).astype(float).tolist()
    for i in range(6):
        duration[i][i] = 0.0
    optimum = _brute_force(duration)
    pois = _grid(2, 3)
    provider = StaticMatrixProvider(duration, duration)

    assert lower_bound(duration, 0, 1, 0.0) <= optimum + 1e-9
    for cls, kwargs in (
        (HeldKarpSolver, {}),
        (BranchAndBoundSolver, {}),
        (BacktrackingSolver, {"objective": Objective.DURATION}),
    ):
        route = _solver(cls, provider, **kwargs).solve(pois)
        assert route.duration == pytest.approx(optimum)


def test_complexity_limit_is_checked_before_matrix_fetch():
    pois = _grid(3, 4)
    provider = StaticMatrixProvider([[0.0] * 12 for _ in range(12)])
    recorder = MetricsRecorder(track_memory=False)

    with pytest.raises(ComplexityLimitExceeded) as excinfo:
        _solver(BacktrackingSolver, provider, recorder=recorder).solve(pois)

    assert excinfo.value.limit == 10
    assert provider.calls == []
    (entry,) = recorder.get_all()
    assert entry.algorithm_name == "Backtracking"
    assert entry.route_distance is None


def test_max_nodes_override():
    pois = _grid(1, 5)
    with pytest.raises(ComplexityLimitExceeded):
        _solver(HeldKarpSolver, max_nodes=4).solve(pois)


def test_cancel_event_stops_solve():
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(SolveCancelled):
        _solver(GreedySolver).solve(_grid(2, 3), cancel_event=cancel)


def test_time_limit_raises_deadline_exceeded():
    with pytest.raises(DeadlineExceeded):
        _solver(HeldKarpSolver, time_limit_seconds=1e-9).solve(_grid(2, 5))


def test_held_karp_falls_back_when_no_finite_tour():
    pois = _grid(2, 2)
    inf = math.inf
    provider = StaticMatrixProvider([[0 if i == j else inf for j in range(4)] for i in range(4)])
    recorder = MetricsRecorder(track_memory=False)

    route = _solver(HeldKarpSolver, provider, recorder=recorder).solve(pois)

    assert route.clustered_order == [0, 1, 2, 3, 0]
    assert len(route.warnings) == 1
    assert route.metadata["fallback"] is True
    assert recorder.get_all()[0].optimality is None


def test_branch_and_bound_falls_back_when_no_finite_tour():
    pois = _grid(2, 2)
    inf = math.inf
    provider = StaticMatrixProvider([[0 if i == j else inf for j in range(4)] for i in range(4)])
    recorder = MetricsRecorder(track_memory=False)

    route = _solver(BranchAndBoundSolver, provider, recorder=recorder).solve(pois)

    assert route.clustered_order == [0, 1, 2, 3, 0]
    assert len(route.warnings) == 1
    assert "no finite tour" in str(route.warnings[0])
    assert route.metadata["fallback"] is True
    assert "best_cost" not in route.metadata
    assert recorder.get_all()[0].optimality is None


class _FailingProvider:
    def __init__(self, error: Exception) -> None:
        self.error = error
        self.calls = 0

    def get_route_matrices(self, coordinates):
        self.calls += 1
        raise self.error


@pytest.mark.parametrize("algorithm", [Algorithm.GREEDY, Algorithm.HELD_KARP])
def test_upstream_matrix_error_propagates_unchanged_and_is_recorded(algorithm):
    error = UpstreamMatrixError("matrix service returned 503")
    provider = _FailingProvider(error)
    recorder = MetricsRecorder(track_memory=False)
    solver = get_solver(algorithm, provider=provider, recorder=recorder, durations=_durations())

    with pytest.raises(UpstreamMatrixError) as excinfo:
        solver.solve(_scattered(5))

    assert excinfo.value is error
    assert provider.calls == 1
    entries = recorder.get_all()
    assert len(entries) == 1
    assert entries[0].algorithm_name == solver.label
    assert entries[0].node_count == 5
    assert entries[0].route_distance is None
    assert entries[0].optimality is None


def test_too_few_pois_and_bad_metadata_are_rejected():
    solver = _solver(GreedySolver)
    with pytest.raises(InsufficientPointsError):
        solver.solve([Coordinate(0.0, 0.0)])
    with pytest.raises(ValidationError):
        solver.solve(_grid(1, 3), [PoiMetadata()])


def test_invalid_tour_from_algorithm_is_reported():
    class BrokenSolver(TourSolver):
        algorithm = Algorithm.GREEDY
        label = "Broken"

        def build_tour(self, problem):
            return TourSolution(order=[0, 1, 1, 0])

    with pytest.raises(AlgorithmError):
        _solver(BrokenSolver).solve(_grid(1, 3))


def test_greedy_takes_nearest_and_breaks_ties_by_index():
    pois = _grid(1, 4)
    distance = [
        [0, 5, 5, 9],
        [5, 0, 1, 1],
        [5, 1, 0, 9],
        [9, 1, 9, 0],
    ]
    route = _solver(GreedySolver, StaticMatrixProvider(distance)).solve(pois)
    assert route.clustered_order == [0, 1, 2, 3, 0]


def test_dispatcher_resolves_aliases_and_filters_options():
    common = {"provider": HaversineMatrixProvider(), "recorder": MetricsRecorder(), "durations": _durations()}

    assert isinstance(get_solver("ptas", epsilon=0.5, **common), GridHeuristicSolver)
    assert isinstance(get_solver("dp", **common), HeldKarpSolver)
    greedy = get_solver("greedy", epsilon=0.5, sort_strategy="clockwise", **common)
    assert isinstance(greedy, GreedySolver)
    with pytest.raises(ValidationError):
        get_solver("simulated_annealing", **common)


def test_grid_heuristic_small_instances_match_greedy():
    pois = _scattered(6, seed=5)
    greedy = _solver(GreedySolver).solve(pois)
    grid = _solver(GridHeuristicSolver).solve(pois)

    assert grid.clustered_order == greedy.clustered_order
    assert grid.metadata["small_instance"] is True


def test_grid_heuristic_reports_grid_parameters():
    route = _solver(GridHeuristicSolver).solve(_grid(4, 4))

    assert route.variant == "epsilon=0.2"
    assert route.metadata["grid_size"] == 20
    assert route.metadata["portals_per_side"] == 40
    assert route.metadata["small_instance"] is False

    coarse = _solver(GridHeuristicSolver, epsilon=1.0).solve(_grid(4, 4))
    assert coarse.metadata["grid_size"] == 4
    assert coarse.metadata["portals_per_side"] == 8


def test_grid_heuristic_rejects_non_positive_epsilon():
    with pytest.raises(ValidationError):
        _solver(GridHeuristicSolver, epsilon=0.0)
