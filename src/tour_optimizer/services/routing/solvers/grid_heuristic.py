"""Grid-partitioned nearest-neighbor heuristic (exposed as "ptas")."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from ....config import settings
from ....errors import ValidationError
from ....models.domain import Coordinate
from .base import Algorithm, TourProblem, TourSolution, TourSolver
from .greedy import nearest_neighbor_order

SMALL_INSTANCE_LIMIT = 8
COMPLEXITY_FACTOR = 0.15


def normalize_coordinates(coordinates: Sequence[Coordinate]) -> np.ndarray:
    """Scale (longitude, latitude) into the unit square. Degenerate axes collapse to 0."""

    points = np.array([[coord.longitude, coord.latitude] for coord in coordinates], dtype=float)
    low = points.min(axis=0)
    span = points.max(axis=0) - low
    span[span == 0] = 1.0
    return (points - low) / span


def grid_dimensions(epsilon: float) -> tuple[int, int]:
    # Rounded first so that e.g. 4 / 0.2 does not ceil to 21 on float noise.
    grid_size = max(4, math.ceil(round(4 / epsilon, 9)))
    portals_per_side = max(2, math.ceil(round(8 / epsilon, 9)))
    return grid_size, portals_per_side


class GridHeuristicSolver(TourSolver):
    """Nearest-neighbor walk with a grid-distance penalty.

    Each candidate is scored as travel duration, plus its visit time unless it
    would be the final stop, plus ``epsilon * manhattan * 0.15 * travel`` where
    the Manhattan distance is measured between normalized coordinates. The grid
    and portal counts derived from ``epsilon`` are reported for reference only;
    this is a heuristic without an approximation guarantee.
    """

    algorithm = Algorithm.GRID_HEURISTIC
    label = "GridHeuristic"

    def __init__(self, *, epsilon: float | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.epsilon = epsilon if epsilon is not None else settings.ptas_epsilon
        if self.epsilon <= 0:
            raise ValidationError(f"epsilon must be positive, got {self.epsilon}.")

    @property
    def variant(self) -> str | None:
        return f"epsilon={self.epsilon:g}"

    def build_tour(self, problem: TourProblem) -> TourSolution:
        n = problem.size
        grid_size, portals_per_side = grid_dimensions(self.epsilon)
        metadata = {
            "epsilon": self.epsilon,
            "grid_size": grid_size,
            "portals_per_side": portals_per_side,
        }

        if n <= SMALL_INSTANCE_LIMIT:
            order = nearest_neighbor_order(problem.distance, problem.deadline)
            metadata["small_instance"] = True
            return TourSolution(order=order, iterations=n - 1, metadata=metadata)

        normalized = normalize_coordinates(problem.coordinates)
        cells = np.minimum((normalized * grid_size).astype(int), grid_size - 1)
        metadata["occupied_cells"] = len({(int(x), int(y)) for x, y in cells})
        metadata["small_instance"] = False

        duration = problem.duration
        unvisited = set(range(1, n))
        order = [0]
        current = 0
        while unvisited:
            problem.deadline.check()
            charge_visit = len(unvisited) > 1

            def score(j: int) -> tuple[float, int]:
                travel = duration[current][j]
                manhattan = float(np.abs(normalized[current] - normalized[j]).sum())
                penalty = self.epsilon * manhattan * COMPLEXITY_FACTOR * travel
                visit = problem.visit_seconds[j] if charge_visit else 0.0
                return travel + visit + penalty, j

            next_node = min(unvisited, key=score)
            order.append(next_node)
            unvisited.remove(next_node)
            current = next_node
        order.append(0)
        return TourSolution(order=order, iterations=n - 1, metadata=metadata)
