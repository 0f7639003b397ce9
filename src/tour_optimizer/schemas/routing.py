"""Tour request/response schemas."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..services.clustering import ClusterMode
from ..services.routing.solvers.base import Objective
from ..services.routing.solvers.bitonic import SortStrategy


class CoordinateModel(BaseModel):
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)


class PoiModel(CoordinateModel):
    category: Optional[str] = Field(default=None, description="Top-level POI category, e.g. 'tourism'.")
    sub_category: Optional[str] = Field(default=None, description="Sub-category, e.g. 'museum'.")


class AlgorithmParameters(BaseModel):
    """Optional per-algorithm tuning. Unset values fall back to settings."""

    objective: Optional[Objective] = None
    sort_strategy: Optional[SortStrategy] = None
    epsilon: Optional[float] = Field(default=None, gt=0)
    num_ants: Optional[int] = Field(default=None, ge=1)
    alpha: Optional[float] = Field(default=None, ge=0)
    beta: Optional[float] = Field(default=None, ge=0)
    evaporation_rate: Optional[float] = Field(default=None, ge=0, le=1)
    iterations: Optional[int] = Field(default=None, ge=1)
    seed: Optional[int] = None
    time_limit_seconds: Optional[float] = Field(default=None, gt=0)
    max_nodes: Optional[int] = Field(default=None, ge=2)


class TourRequest(BaseModel):
    pois: List[PoiModel] = Field(..., description="Stops in input order; the first is the start of the tour.")
    algorithm: str = Field(default="greedy", description="Algorithm name or alias (e.g. 'held_karp', 'ptas').")
    max_cluster_distance: Optional[float] = Field(default=None, ge=0, description="Cluster radius in meters.")
    cluster_mode: ClusterMode = ClusterMode.SEED
    parameters: AlgorithmParameters = Field(default_factory=AlgorithmParameters)
    persist: bool = False
    run_label: Optional[str] = Field(default=None, description="Friendly name for persisted outputs.")


class ClusterModel(BaseModel):
    representative: CoordinateModel
    category: Optional[str] = None
    sub_category: Optional[str] = None
    clustered_ids: List[int]


class TourResponse(BaseModel):
    algorithm: str
    variant: Optional[str] = None
    points: List[CoordinateModel]
    original_indices: List[int]
    clustered_order: List[int]
    total_distance_m: float
    duration_s: float
    visit_time_s: float
    total_time_s: float
    clusters: List[ClusterModel]
    warnings: List[str] = Field(default_factory=list)
    metadata: dict = Field(default_factory=dict)
    output_dir: Optional[str] = None


class BitonicComparisonResponse(BaseModel):
    best_strategy: SortStrategy
    results: Dict[str, TourResponse]
