"""Ant colony optimisation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

import numpy as np

from ....config import settings
from ....errors import ValidationError
from .base import Algorithm, Deadline, TourProblem, TourSolution, TourSolver

logger = logging.getLogger(__name__)

IterationCallback = Callable[[int, list[int], float, list[list[int]], np.ndarray], None]


@dataclass(slots=True)
class Ant:
    tour: list[int] = field(default_factory=list)
    distance_traveled: float = 0.0

    def visit(self, node: int, distance: float) -> None:
        self.tour.append(node)
        self.distance_traveled += distance


@dataclass(slots=True)
class ColonyResult:
    best_tour: list[int]
    best_distance: float
    history: list[float]


class AntColony:
    """Pheromone-guided tour construction over a distance matrix.

    Transition weights are ``pheromone**alpha * (1 / distance)**beta``. After
    every iteration pheromones evaporate by ``evaporation_rate`` and each ant
    deposits ``1 / (num_ants * tour_length)`` on both directions of its edges.
    """

    def __init__(
        self,
        distance_matrix: Sequence[Sequence[float]],
        *,
        num_ants: int,
        alpha: float,
        beta: float,
        evaporation_rate: float,
        iterations: int,
        seed: Optional[int] = None,
    ) -> None:
        self.distances = np.asarray(distance_matrix, dtype=float)
        self.size = self.distances.shape[0]
        self.num_ants = num_ants
        self.alpha = alpha
        self.beta = beta
        self.evaporation_rate = evaporation_rate
        self.iterations = iterations
        self.rng = np.random.default_rng(seed)

        self.pheromones = np.ones((self.size, self.size))
        with np.errstate(divide="ignore"):
            heuristic = np.where(self.distances > 0, 1.0 / self.distances, 0.0)
        np.fill_diagonal(heuristic, 0.0)
        self.heuristic = heuristic

    def _choose_next(self, current: int, candidates: list[int]) -> int:
        weights = (self.pheromones[current, candidates] ** self.alpha) * (
            self.heuristic[current, candidates] ** self.beta
        )
        total = float(weights.sum())
        if not np.isfinite(total) or total <= 0:
            return candidates[int(self.rng.integers(len(candidates)))]
        cumulative = np.cumsum(weights / total)
        index = int(np.searchsorted(cumulative, self.rng.random()))
        # Float rounding can leave the cumulative sum just under 1.
        return candidates[min(index, len(candidates) - 1)]

    def _construct_tour(self) -> Ant:
        ant = Ant(tour=[0])
        unvisited = list(range(1, self.size))
        current = 0
        while unvisited:
            next_node = self._choose_next(current, unvisited)
            ant.visit(next_node, float(self.distances[current, next_node]))
            unvisited.remove(next_node)
            current = next_node
        ant.visit(0, float(self.distances[current, 0]))
        return ant

    def _update_pheromones(self, ants: Sequence[Ant]) -> None:
        self.pheromones *= 1.0 - self.evaporation_rate
        for ant in ants:
            if ant.distance_traveled <= 0:
                continue
            deposit = 1.0 / (self.num_ants * ant.distance_traveled)
            for a, b in zip(ant.tour, ant.tour[1:]):
                self.pheromones[a, b] += deposit
                self.pheromones[b, a] += deposit

    def run(self, callback: IterationCallback | None = None, deadline: Deadline | None = None) -> ColonyResult:
        best_tour: list[int] = []
        best_distance = float("inf")
        history: list[float] = []

        for iteration in range(self.iterations):
            if deadline is not None:
                deadline.check()
            ants = [self._construct_tour() for _ in range(self.num_ants)]
            self._update_pheromones(ants)
            for ant in ants:
                if ant.distance_traveled < best_distance:
                    best_distance = ant.distance_traveled
                    best_tour = list(ant.tour)
            history.append(best_distance)
            if callback is not None:
                callback(iteration, list(best_tour), best_distance, [list(ant.tour) for ant in ants], self.pheromones.copy())

        logger.debug(f"Ant colony finished {self.iterations} iterations, best distance {best_distance:.1f}")
        return ColonyResult(best_tour=best_tour, best_distance=best_distance, history=history)


class AntColonySolver(TourSolver):
    algorithm = Algorithm.ANT_COLONY
    label = "ACO"

    def __init__(
        self,
        *,
        num_ants: int | None = None,
        alpha: float | None = None,
        beta: float | None = None,
        evaporation_rate: float | None = None,
        iterations: int | None = None,
        seed: int | None = None,
        callback: IterationCallback | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.num_ants = num_ants if num_ants is not None else settings.aco_num_ants
        self.alpha = alpha if alpha is not None else settings.aco_alpha
        self.beta = beta if beta is not None else settings.aco_beta
        self.evaporation_rate = evaporation_rate if evaporation_rate is not None else settings.aco_evaporation_rate
        self.iterations = iterations if iterations is not None else settings.aco_iterations
        self.seed = seed
        self.callback = callback
        if self.num_ants < 1 or self.iterations < 1:
            raise ValidationError("Ant colony needs at least one ant and one iteration.")
        if not 0.0 <= self.evaporation_rate <= 1.0:
            raise ValidationError(f"evaporation_rate must lie in [0, 1], got {self.evaporation_rate}.")

    @property
    def variant(self) -> str | None:
        return f"ants={self.num_ants},iterations={self.iterations}"

    def build_tour(self, problem: TourProblem) -> TourSolution:
        colony = AntColony(
            problem.distance,
            num_ants=self.num_ants,
            alpha=self.alpha,
            beta=self.beta,
            evaporation_rate=self.evaporation_rate,
            iterations=self.iterations,
            seed=self.seed,
        )
        result = colony.run(self.callback, problem.deadline)
        return TourSolution(
            order=result.best_tour,
            iterations=self.iterations,
            metadata={
                "best_distance": result.best_distance,
                "best_distance_history": result.history,
                "seed": self.seed,
            },
        )
