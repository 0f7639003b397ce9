"""Held-Karp dynamic programming over subsets."""

from __future__ import annotations

import math
from itertools import combinations

from ....config import settings
from ....errors import AlgorithmDegeneracyWarning
from .base import Algorithm, TourProblem, TourSolution, TourSolver


class HeldKarpSolver(TourSolver):
    """Exact tour minimising travel duration plus visit time.

    ``cost[S][last]`` is the cheapest path that leaves the start, visits every
    node of ``S`` and ends at ``last``; arriving at a node charges its visit
    time. Subsets are processed by increasing size and only the previous
    level's costs are kept in memory. O(n^2 * 2^n).
    """

    algorithm = Algorithm.HELD_KARP
    label = "HeldKarp"

    @classmethod
    def default_max_nodes(cls) -> int | None:
        return settings.held_karp_max_nodes

    def build_tour(self, problem: TourProblem) -> TourSolution:
        n = problem.size
        duration = problem.duration
        visit = problem.visit_seconds

        previous: dict[int, list[float]] = {}
        parents: dict[int, list[int]] = {}
        for city in range(1, n):
            mask = 1 | (1 << city)
            values = [math.inf] * n
            values[city] = duration[0][city] + visit[city]
            previous[mask] = values
            parents[mask] = [0 if j == city else -1 for j in range(n)]
        states = n - 1

        for size in range(2, n):
            problem.deadline.check()
            current: dict[int, list[float]] = {}
            for subset in combinations(range(1, n), size):
                mask = 1
                for city in subset:
                    mask |= 1 << city
                values = [math.inf] * n
                best_parents = [-1] * n
                for last in subset:
                    prev_values = previous[mask & ~(1 << last)]
                    best = math.inf
                    best_prev = -1
                    for prev in subset:
                        if prev == last:
                            continue
                        candidate = prev_values[prev] + duration[prev][last] + visit[last]
                        if candidate < best:
                            best = candidate
                            best_prev = prev
                    values[last] = best
                    best_parents[last] = best_prev
                    states += 1
                current[mask] = values
                parents[mask] = best_parents
            previous = current

        full = (1 << n) - 1
        final_values = previous[full]
        best_total = math.inf
        best_last = -1
        for last in range(1, n):
            candidate = final_values[last] + duration[last][0]
            if candidate < best_total:
                best_total = candidate
                best_last = last

        order = self._reconstruct(parents, full, best_last) if best_last != -1 else None
        if order is None:
            warning = AlgorithmDegeneracyWarning(
                f"{self.label} found no finite tour over {n} nodes; falling back to input order."
            )
            return TourSolution(
                order=[*range(n), 0],
                iterations=states,
                optimality=None,
                warnings=[warning],
                metadata={"fallback": True},
            )

        return TourSolution(
            order=order,
            iterations=states,
            optimality=1.0,
            metadata={"best_cost": best_total},
        )

    @staticmethod
    def _reconstruct(parents: dict[int, list[int]], mask: int, last: int) -> list[int] | None:
        path = []
        city = last
        while city != 0:
            if city == -1:
                return None
            path.append(city)
            previous_city = parents[mask][city]
            mask &= ~(1 << city)
            city = previous_city
        path.reverse()
        return [0, *path, 0]
