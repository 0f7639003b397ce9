"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_ROOT = Path(__file__).resolve().parent


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="TOUR_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Tour Optimizer"
    data_root: Path = Field(default=Path("data"), description="Root directory for persisted outputs.")
    category_durations_file: Path = Field(
        default=PACKAGE_ROOT / "data" / "category_times.json",
        description="Category/sub-category to visit duration table (minutes).",
    )

    matrix_provider: Literal["openrouteservice", "haversine"] = Field(
        default="openrouteservice",
        description="Source of distance/duration matrices.",
    )
    ors_base_url: str = Field(
        default="https://api.openrouteservice.org",
        description="Base URL for the OpenRouteService API.",
    )
    ors_api_key: Optional[str] = Field(default=None, description="OpenRouteService API key.")
    ors_profile: Literal["driving-car", "driving-hgv", "cycling-regular", "foot-walking"] = Field(
        default="driving-car",
        description="OpenRouteService profile used for matrix requests.",
    )
    matrix_timeout_seconds: float = Field(default=60.0, gt=0.0)
    matrix_max_retries: int = Field(default=3, ge=0)
    matrix_backoff_seconds: float = Field(default=1.0, ge=0.0)
    matrix_max_locations_per_request: int = Field(default=50, ge=2)
    matrix_max_parallel_requests: int = Field(default=4, ge=1)
    haversine_average_speed_kmh: float = Field(default=40.0, gt=0.0)

    default_visit_duration_minutes: float = Field(default=30.0, ge=0.0)
    default_cluster_distance_m: float = Field(default=100.0, ge=0.0)

    backtracking_max_nodes: int = Field(default=10, ge=2)
    branch_and_bound_max_nodes: int = Field(default=12, ge=2)
    held_karp_max_nodes: int = Field(default=15, ge=2)
    solver_time_limit_seconds: Optional[float] = Field(default=30.0, gt=0.0)

    aco_num_ants: int = Field(default=10, ge=1)
    aco_alpha: float = Field(default=1.0, ge=0.0)
    aco_beta: float = Field(default=5.0, ge=0.0)
    aco_evaporation_rate: float = Field(default=0.5, ge=0.0, le=1.0)
    aco_iterations: int = Field(default=100, ge=1)
    ptas_epsilon: float = Field(default=0.2, gt=0.0)

    metrics_track_memory: bool = Field(
        default=False,
        description="Measure allocation deltas with tracemalloc around solver runs.",
    )

    @field_validator("data_root", "category_durations_file", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("ors_base_url", mode="after")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


settings = Settings()
