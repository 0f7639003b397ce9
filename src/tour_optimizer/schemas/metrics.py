"""Metrics response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel


class MetricEntryModel(BaseModel):
    algorithm_name: str
    variant: Optional[str] = None
    node_count: int
    execution_time_ms: float
    memory_usage_mb: Optional[float] = None
    route_distance: Optional[float] = None
    route_duration: Optional[float] = None
    route_visit_time: Optional[float] = None
    route_total_time: Optional[float] = None
    iterations: Optional[int] = None
    optimality: Optional[float] = None
    timestamp: datetime


class MetricsResponse(BaseModel):
    total_runs: int
    algorithm_counts: Dict[str, int]
    avg_execution_time_ms: Dict[str, float]
    entries: List[MetricEntryModel]
