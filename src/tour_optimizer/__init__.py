"""Route-optimization engine for tours over points of interest."""

__version__ = "0.1.0"
