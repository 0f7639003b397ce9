"""Error taxonomy shared by the clustering, matrix and solver layers."""

from __future__ import annotations


class TourOptimizerError(Exception):
    """Base class for every error raised by the package."""


class ConfigurationError(TourOptimizerError, ValueError):
    """A required external credential or provider setting is missing."""


class ValidationError(TourOptimizerError, ValueError):
    """Caller input is malformed (too few POIs, mismatched metadata, ...)."""


class InsufficientPointsError(ValidationError):
    def __init__(self, count: int, required: int = 2) -> None:
        super().__init__(f"At least {required} POIs are required, got {count}.")
        self.count = count
        self.required = required


class UpstreamMatrixError(TourOptimizerError):
    """The matrix provider failed or returned malformed data."""


class AlgorithmError(TourOptimizerError):
    """A tour algorithm could not produce a result."""


class ComplexityLimitExceeded(AlgorithmError):
    def __init__(self, algorithm: str, node_count: int, limit: int) -> None:
        super().__init__(
            f"{algorithm} supports at most {limit} clustered nodes, got {node_count}. "
            f"Increase the cluster distance or choose a heuristic algorithm."
        )
        self.algorithm = algorithm
        self.node_count = node_count
        self.limit = limit


class DeadlineExceeded(AlgorithmError):
    """The solver ran past its time limit."""


class SolveCancelled(AlgorithmError):
    """The caller cancelled the solve while it was running."""


class AlgorithmDegeneracyWarning(UserWarning):
    """The solver fell back to a trivial tour instead of a reconstructed optimum."""
