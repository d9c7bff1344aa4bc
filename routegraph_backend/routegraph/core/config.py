"""
RouteGraph: Application Configuration
Uses pydantic-settings to load from .env file and environment variables.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # ── Road dataset ──
    roads_path: str = Field(
        default="data/roads.geojson",
        description="GeoJSON FeatureCollection of LineString/MultiLineString roads",
    )
    cache_dir: str = Field(default="data/cache")
    use_graph_cache: bool = Field(default=True, description="Reuse the pickled graph when the dataset is unchanged")

    # ── Topology ──
    dedup_tolerance_deg: float = Field(
        default=1e-4, gt=0, description="Points closer than this (degrees) collapse into one node"
    )
    cost_decimals: int = Field(default=2, ge=0, le=9, description="Edge cost rounding (km)")

    # ── Queries ──
    max_snap_distance_km: Optional[float] = Field(
        default=None, gt=0, description="Reject query points farther than this from the network"
    )
    result_cache_size: int = Field(default=128, ge=0, description="LRU size of the per-query path cache")

    # ── API Server ──
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=3001)
    debug: bool = Field(default=True)
    cors_origins: list[str] = Field(
        default=[
            "http://localhost:5173",  # Vite dev server
            "http://localhost:3000",
            "http://127.0.0.1:5173",
            "http://127.0.0.1:3000",
        ]
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "ROUTEGRAPH_",
        "extra": "ignore",
    }


# Singleton instance
settings = Settings()
