import math

import pytest

from tour_optimizer.data.category_durations import CategoryDurationTable
from tour_optimizer.models.domain import Coordinate
from tour_optimizer.services.metrics.recorder import MetricsRecorder
from tour_optimizer.services.routing.matrices import HaversineMatrixProvider
from tour_optimizer.services.routing.solvers.bitonic import BitonicSolver, SortStrategy, sort_positions


def _circle(n: int, radius: float = 0.01) -> list[Coordinate]:
    return [
        Coordinate(radius * math.sin(2 * math.pi * k / n), radius * math.cos(2 * math.pi * k / n))
        for k in range(n)
    ]


def _solver(strategy: SortStrategy) -> BitonicSolver:
    return BitonicSolver(
        sort_strategy=strategy,
        provider=HaversineMatrixProvider(),
        recorder=MetricsRecorder(track_memory=False),
        durations=CategoryDurationTable({}, default_minutes=30),
    )


def test_sort_positions_directional():
    coords = [Coordinate(0.0, 2.0), Coordinate(1.0, 0.0), Coordinate(-1.0, 1.0)]

    assert sort_positions(coords, SortStrategy.WEST_TO_EAST) == [1, 2, 0]
    assert sort_positions(coords, SortStrategy.EAST_TO_WEST) == [0, 2, 1]
    assert sort_positions(coords, SortStrategy.SOUTH_TO_NORTH) == [2, 0, 1]
    assert sort_positions(coords, SortStrategy.NORTH_TO_SOUTH) == [1, 0, 2]


def test_sort_positions_radial():
    coords = [Coordinate(0.0, 0.0), Coordinate(0.0, 0.03), Coordinate(0.0, -0.01), Coordinate(0.0, -0.02)]
    # Centroid sits at longitude 0.

    assert sort_positions(coords, SortStrategy.INSIDE_OUT)[0] == 0
    assert sort_positions(coords, SortStrategy.OUTSIDE_IN)[0] == 1


@pytest.mark.parametrize(
    "strategy",
    [
        SortStrategy.WEST_TO_EAST,
        SortStrategy.EAST_TO_WEST,
        SortStrategy.SOUTH_TO_NORTH,
        SortStrategy.NORTH_TO_SOUTH,
        SortStrategy.CLOCKWISE,
        SortStrategy.COUNTER_CLOCKWISE,
    ],
)
def test_convex_input_gives_crossing_free_tour(strategy):
    pois = _circle(8)

    route = _solver(strategy).solve(pois)

    assert route.metadata["crossing_free"] is True
    assert route.metadata["sort_strategy"] == strategy.value
    assert route.variant == strategy.value
    assert sorted(route.original_indices) == list(range(8))
    # The optimal tour around a regular octagon follows the perimeter.
    assert route.clustered_order in ([0, 1, 2, 3, 4, 5, 6, 7, 0], [0, 7, 6, 5, 4, 3, 2, 1, 0])


@pytest.mark.parametrize("strategy", list(SortStrategy))
def test_every_strategy_produces_a_valid_tour(strategy):
    pois = [
        Coordinate(48.8606, 2.3376),
        Coordinate(48.8530, 2.3499),
        Coordinate(48.8738, 2.2950),
        Coordinate(48.8584, 2.2945),
        Coordinate(48.8867, 2.3431),
        Coordinate(48.8462, 2.3372),
    ]

    route = _solver(strategy).solve(pois)

    assert sorted(route.original_indices) == list(range(len(pois)))
    assert route.clustered_order[0] == route.clustered_order[-1] == 0
    # The reported DP cost is travel plus visits, so it covers the visit time.
    assert route.metadata["bitonic_cost"] >= route.visit_time
