"""Algorithm run metrics."""

from .recorder import CSV_COLUMNS, Measurement, MetricsRecorder, get_metrics_recorder

__all__ = ["CSV_COLUMNS", "Measurement", "MetricsRecorder", "get_metrics_recorder"]
