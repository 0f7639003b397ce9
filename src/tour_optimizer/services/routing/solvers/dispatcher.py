"""Factory for tour algorithms based on user selection."""

from __future__ import annotations

from typing import Any

from ....errors import ValidationError
from .ant_colony import AntColonySolver
from .backtracking import BacktrackingSolver
from .base import Algorithm, TourSolver
from .bitonic import BitonicSolver
from .branch_and_bound import BranchAndBoundSolver
from .greedy import GreedySolver
from .grid_heuristic import GridHeuristicSolver
from .held_karp import HeldKarpSolver

COMMON_OPTIONS = {"provider", "recorder", "durations", "time_limit_seconds", "max_nodes", "cluster_mode"}


def _options(kwargs: dict[str, Any], extra: set[str]) -> dict[str, Any]:
    allowed = COMMON_OPTIONS | extra
    return {k: v for k, v in kwargs.items() if k in allowed and v is not None}


def get_solver(algorithm: str | Algorithm, **kwargs: Any) -> TourSolver:
    try:
        selected = Algorithm(algorithm)
    except ValueError as exc:
        raise ValidationError(f"Unknown algorithm '{algorithm}'.") from exc

    match selected:
        case Algorithm.BACKTRACKING:
            return BacktrackingSolver(**_options(kwargs, {"objective"}))
        case Algorithm.BRANCH_AND_BOUND:
            return BranchAndBoundSolver(**_options(kwargs, {"objective"}))
        case Algorithm.HELD_KARP:
            return HeldKarpSolver(**_options(kwargs, set()))
        case Algorithm.BITONIC:
            return BitonicSolver(**_options(kwargs, {"sort_strategy"}))
        case Algorithm.GRID_HEURISTIC:
            return GridHeuristicSolver(**_options(kwargs, {"epsilon"}))
        case Algorithm.ANT_COLONY:
            return AntColonySolver(
                **_options(
                    kwargs,
                    {"num_ants", "alpha", "beta", "evaporation_rate", "iterations", "seed", "callback"},
                )
            )
        case Algorithm.GREEDY:
            return GreedySolver(**_options(kwargs, set()))
        case _:
            raise ValidationError(f"Unknown algorithm '{algorithm}'.")
