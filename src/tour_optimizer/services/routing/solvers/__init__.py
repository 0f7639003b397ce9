"""Tour construction algorithms."""

from .ant_colony import AntColony, AntColonySolver
from .backtracking import BacktrackingSolver
from .base import Algorithm, Deadline, Objective, TourProblem, TourSolution, TourSolver
from .bitonic import BitonicSolver, SortStrategy
from .branch_and_bound import BranchAndBoundSolver
from .dispatcher import get_solver
from .greedy import GreedySolver
from .grid_heuristic import GridHeuristicSolver
from .held_karp import HeldKarpSolver

__all__ = [
    "Algorithm",
    "AntColony",
    "AntColonySolver",
    "BacktrackingSolver",
    "BitonicSolver",
    "BranchAndBoundSolver",
    "Deadline",
    "GreedySolver",
    "GridHeuristicSolver",
    "HeldKarpSolver",
    "Objective",
    "SortStrategy",
    "TourProblem",
    "TourSolution",
    "TourSolver",
    "get_solver",
]
