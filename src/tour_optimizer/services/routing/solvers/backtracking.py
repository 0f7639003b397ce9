"""Exhaustive permutation search."""

from __future__ import annotations

import math

from ....config import settings
from .base import Algorithm, Objective, TourProblem, TourSolution, TourSolver

# Deadline is polled once per this many evaluated permutations.
_CHECK_EVERY = 2048


class BacktrackingSolver(TourSolver):
    """Evaluates every ordering of the non-start nodes and keeps the cheapest closed tour.

    Permutations are generated with the iterative form of Heap's algorithm, so
    recursion depth stays constant. Runs in O(n!), capped by ``backtracking_max_nodes``.
    """

    algorithm = Algorithm.BACKTRACKING
    label = "Backtracking"

    def __init__(self, *, objective: Objective = Objective.DISTANCE, **kwargs) -> None:
        super().__init__(**kwargs)
        self.objective = Objective(objective)

    @classmethod
    def default_max_nodes(cls) -> int | None:
        return settings.backtracking_max_nodes

    @property
    def variant(self) -> str | None:
        return self.objective.value

    def build_tour(self, problem: TourProblem) -> TourSolution:
        cost = problem.cost_matrix(self.objective)
        nodes = list(range(1, problem.size))
        k = len(nodes)

        def tour_cost() -> float:
            total = cost[0][nodes[0]] + cost[nodes[-1]][0]
            for a, b in zip(nodes, nodes[1:]):
                total += cost[a][b]
            return total

        best_cost = tour_cost()
        best_nodes = list(nodes)
        evaluated = 1

        counters = [0] * k
        i = 0
        while i < k:
            if counters[i] < i:
                if i % 2 == 0:
                    nodes[0], nodes[i] = nodes[i], nodes[0]
                else:
                    nodes[counters[i]], nodes[i] = nodes[i], nodes[counters[i]]
                candidate = tour_cost()
                evaluated += 1
                if candidate < best_cost:
                    best_cost = candidate
                    best_nodes = list(nodes)
                if evaluated % _CHECK_EVERY == 0:
                    problem.deadline.check()
                counters[i] += 1
                i = 0
            else:
                counters[i] = 0
                i += 1

        return TourSolution(
            order=[0, *best_nodes, 0],
            iterations=evaluated,
            optimality=1.0,
            metadata={"objective": self.objective.value, "best_cost": best_cost, "permutations": math.factorial(k)},
        )
