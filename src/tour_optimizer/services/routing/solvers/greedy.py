"""Greedy nearest-neighbor tour construction."""

from __future__ import annotations

from typing import Sequence

from .base import Algorithm, Deadline, TourProblem, TourSolution, TourSolver


def nearest_neighbor_order(
    matrix: Sequence[Sequence[float]],
    deadline: Deadline | None = None,
    start: int = 0,
) -> list[int]:
    """Closed tour that always moves to the cheapest unvisited node (ties go to the lower index)."""

    n = len(matrix)
    unvisited = set(range(n))
    unvisited.discard(start)
    order = [start]
    current = start
    while unvisited:
        if deadline is not None:
            deadline.check()
        next_node = min(unvisited, key=lambda j: (matrix[current][j], j))
        order.append(next_node)
        unvisited.remove(next_node)
        current = next_node
    order.append(start)
    return order


class GreedySolver(TourSolver):
    algorithm = Algorithm.GREEDY
    label = "Greedy"

    def build_tour(self, problem: TourProblem) -> TourSolution:
        order = nearest_neighbor_order(problem.distance, problem.deadline)
        return TourSolution(order=order, iterations=problem.size - 1)
