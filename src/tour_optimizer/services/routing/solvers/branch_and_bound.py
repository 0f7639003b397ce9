"""Best-first branch and bound."""

from __future__ import annotations

import heapq
import itertools
import math
from typing import Sequence

from ....config import settings
from ....errors import AlgorithmDegeneracyWarning
from ...geospatial import path_metric
from .base import Algorithm, Objective, TourProblem, TourSolution, TourSolver
from .greedy import nearest_neighbor_order

_CHECK_EVERY = 256


def lower_bound(
    cost: Sequence[Sequence[float]],
    last: int,
    visited_mask: int,
    accumulated: float,
) -> float:
    """Admissible bound on any closed tour extending a partial path.

    Accumulated cost, plus the cheapest edge out of ``last`` into an unvisited
    node, plus for every unvisited node its cheapest edge to another unvisited
    node or back to the start.
    """

    n = len(cost)
    unvisited = [j for j in range(n) if not (visited_mask >> j) & 1]
    if not unvisited:
        return accumulated + cost[last][0]

    bound = accumulated + min(cost[last][j] for j in unvisited)
    targets = [*unvisited, 0]
    for i in unvisited:
        bound += min(cost[i][j] for j in targets if j != i)
    return bound


class BranchAndBoundSolver(TourSolver):
    algorithm = Algorithm.BRANCH_AND_BOUND
    label = "BranchAndBound"

    def __init__(self, *, objective: Objective = Objective.DURATION, **kwargs) -> None:
        super().__init__(**kwargs)
        self.objective = Objective(objective)

    @classmethod
    def default_max_nodes(cls) -> int | None:
        return settings.branch_and_bound_max_nodes

    @property
    def variant(self) -> str | None:
        return self.objective.value

    def build_tour(self, problem: TourProblem) -> TourSolution:
        cost = problem.cost_matrix(self.objective)
        n = problem.size

        # Nearest-neighbor incumbent; the search only replaces it with strictly cheaper tours.
        best_order = nearest_neighbor_order(cost)
        best_cost = path_metric(best_order, cost)

        counter = itertools.count()
        frontier: list[tuple[float, int, float, tuple[int, ...], int]] = [
            (lower_bound(cost, 0, 1, 0.0), next(counter), 0.0, (0,), 1)
        ]
        expanded = 0
        pruned = 0

        while frontier:
            bound, _, accumulated, path, visited_mask = heapq.heappop(frontier)
            if bound >= best_cost:
                # Every remaining node has a bound at least this large.
                pruned += len(frontier) + 1
                break

            expanded += 1
            if expanded % _CHECK_EVERY == 0:
                problem.deadline.check()

            last = path[-1]
            if len(path) == n:
                total = accumulated + cost[last][0]
                if total < best_cost:
                    best_cost = total
                    best_order = [*path, 0]
                continue

            for j in range(1, n):
                if (visited_mask >> j) & 1:
                    continue
                child_cost = accumulated + cost[last][j]
                child_mask = visited_mask | (1 << j)
                child_bound = lower_bound(cost, j, child_mask, child_cost)
                if child_bound < best_cost:
                    heapq.heappush(frontier, (child_bound, next(counter), child_cost, (*path, j), child_mask))
                else:
                    pruned += 1

        if not math.isfinite(best_cost):
            warning = AlgorithmDegeneracyWarning(
                f"{self.label} found no finite tour over {n} nodes; falling back to input order."
            )
            return TourSolution(
                order=[*range(n), 0],
                iterations=expanded,
                optimality=None,
                warnings=[warning],
                metadata={"objective": self.objective.value, "fallback": True},
            )

        return TourSolution(
            order=best_order,
            iterations=expanded,
            optimality=1.0,
            metadata={"objective": self.objective.value, "best_cost": best_cost, "pruned": pruned},
        )
