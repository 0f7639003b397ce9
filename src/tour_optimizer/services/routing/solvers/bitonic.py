"""Bitonic tours over a geometric ordering of the stops."""

from __future__ import annotations

import math
from enum import Enum
from typing import Sequence

from ....models.domain import Coordinate
from ...geospatial import centroid, path_is_simple, path_metric, polar_angle, radial_distance
from .base import Algorithm, TourProblem, TourSolution, TourSolver


class SortStrategy(str, Enum):
    WEST_TO_EAST = "west_to_east"
    EAST_TO_WEST = "east_to_west"
    SOUTH_TO_NORTH = "south_to_north"
    NORTH_TO_SOUTH = "north_to_south"
    CLOCKWISE = "clockwise"
    COUNTER_CLOCKWISE = "counter_clockwise"
    INSIDE_OUT = "inside_out"
    OUTSIDE_IN = "outside_in"


def sort_positions(coordinates: Sequence[Coordinate], strategy: SortStrategy) -> list[int]:
    """Node indices ordered by ``strategy``; ties fall back to the node index."""

    center = centroid(coordinates)
    match SortStrategy(strategy):
        case SortStrategy.WEST_TO_EAST:
            key = lambda i: (coordinates[i].longitude, i)
        case SortStrategy.EAST_TO_WEST:
            key = lambda i: (-coordinates[i].longitude, i)
        case SortStrategy.SOUTH_TO_NORTH:
            key = lambda i: (coordinates[i].latitude, i)
        case SortStrategy.NORTH_TO_SOUTH:
            key = lambda i: (-coordinates[i].latitude, i)
        case SortStrategy.CLOCKWISE:
            key = lambda i: (-polar_angle(coordinates[i], center), i)
        case SortStrategy.COUNTER_CLOCKWISE:
            key = lambda i: (polar_angle(coordinates[i], center), i)
        case SortStrategy.INSIDE_OUT:
            key = lambda i: (radial_distance(coordinates[i], center), i)
        case SortStrategy.OUTSIDE_IN:
            key = lambda i: (-radial_distance(coordinates[i], center), i)
    return sorted(range(len(coordinates)), key=key)


class BitonicSolver(TourSolver):
    """Optimal bitonic tour with respect to a chosen ordering of the stops.

    A bitonic tour walks out along the ordering and comes back, so every stop
    lies on one of two monotone arms. ``best[i][j]`` (``i < j``) is the cheapest
    pair of disjoint arms that start at the first position, end at positions
    ``i`` and ``j`` and together cover positions ``0..j``. Edge costs are the
    symmetrised travel durations plus the visit time of the stop being added.
    The resulting cycle is rotated to start at node 0 and walked in whichever
    direction has the lower real duration.
    """

    algorithm = Algorithm.BITONIC
    label = "Bitonic"

    def __init__(self, *, sort_strategy: SortStrategy = SortStrategy.WEST_TO_EAST, **kwargs) -> None:
        super().__init__(**kwargs)
        self.sort_strategy = SortStrategy(sort_strategy)

    @property
    def variant(self) -> str | None:
        return self.sort_strategy.value

    def build_tour(self, problem: TourProblem) -> TourSolution:
        sequence = sort_positions(problem.coordinates, self.sort_strategy)
        m = len(sequence)
        duration = problem.duration

        def step(p: int, q: int) -> float:
            a, b = sequence[p], sequence[q]
            return (duration[a][b] + duration[b][a]) / 2.0

        def visit(p: int) -> float:
            return problem.visit_seconds[sequence[p]]

        best = [[math.inf] * m for _ in range(m)]
        parent = [[-1] * m for _ in range(m)]
        best[0][1] = step(0, 1) + visit(0) + visit(1)
        for j in range(2, m):
            problem.deadline.check()
            for i in range(j - 1):
                best[i][j] = best[i][j - 1] + step(j - 1, j) + visit(j)
            closing = math.inf
            closing_parent = -1
            for k in range(j - 1):
                candidate = best[k][j - 1] + step(k, j) + visit(j)
                if candidate < closing:
                    closing = candidate
                    closing_parent = k
            best[j - 1][j] = closing
            parent[j - 1][j] = closing_parent
        bitonic_cost = best[m - 2][m - 1] + step(m - 2, m - 1)

        cycle = _walk_cycle(_bitonic_edges(parent, m), sequence.index(0))
        forward = [sequence[p] for p in cycle] + [0]
        backward = [0] + forward[-2:0:-1] + [0]
        order = backward if path_metric(backward, duration) < path_metric(forward, duration) else forward

        crossing_free = path_is_simple([problem.coordinates[i] for i in order[:-1]], closed=True)
        return TourSolution(
            order=order,
            iterations=m * (m - 1) // 2,
            metadata={
                "sort_strategy": self.sort_strategy.value,
                "bitonic_cost": bitonic_cost,
                "crossing_free": crossing_free,
            },
        )


def _bitonic_edges(parent: list[list[int]], m: int) -> list[tuple[int, int]]:
    edges = [(m - 2, m - 1)]
    i, j = m - 2, m - 1
    while j > 1:
        if i < j - 1:
            edges.append((j - 1, j))
            j -= 1
        else:
            k = parent[i][j]
            edges.append((k, j))
            i, j = k, j - 1
    edges.append((0, 1))
    return edges


def _walk_cycle(edges: list[tuple[int, int]], start: int) -> list[int]:
    neighbours: dict[int, list[int]] = {}
    for a, b in edges:
        neighbours.setdefault(a, []).append(b)
        neighbours.setdefault(b, []).append(a)

    cycle = [start]
    previous, current = start, neighbours[start][0]
    while current != start:
        cycle.append(current)
        first, second = neighbours[current]
        previous, current = current, second if first == previous else first
    return cycle
