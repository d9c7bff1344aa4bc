"""
RouteGraph: Pydantic V2 Schemas
All request/response models for the API layer.
"""

from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


# ═══════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════

class Algorithm(str, Enum):
    DIJKSTRA = "dijkstra"
    ASTAR = "astar"


# ═══════════════════════════════════════════════════════════════
# GeoJSON Primitives
# ═══════════════════════════════════════════════════════════════

class GeoJSONFeature(BaseModel):
    type: str = "Feature"
    geometry: dict
    properties: dict = Field(default_factory=dict)


class GeoJSONFeatureCollection(BaseModel):
    type: str = "FeatureCollection"
    features: list[GeoJSONFeature] = Field(default_factory=list)


# ═══════════════════════════════════════════════════════════════
# Routing Models
# ═══════════════════════════════════════════════════════════════

class LonLat(BaseModel):
    """A query point. Accepts {lon, lat}, {lng, lat} or a [lon, lat] pair."""
    model_config = ConfigDict(allow_inf_nan=False)

    lon: float = Field(..., ge=-180, le=180, validation_alias=AliasChoices("lon", "lng", "longitude"))
    lat: float = Field(..., ge=-90, le=90, validation_alias=AliasChoices("lat", "latitude"))

    @model_validator(mode="before")
    @classmethod
    def _from_pair(cls, v):
        if isinstance(v, (list, tuple)):
            if len(v) != 2:
                raise ValueError("point must be a [lon, lat] pair")
            return {"lon": v[0], "lat": v[1]}
        return v

    def as_tuple(self) -> tuple[float, float]:
        return (self.lon, self.lat)


class RouteRequest(BaseModel):
    # Optional so a missing point is reported as InvalidInput (400), not a 422
    start: Optional[LonLat] = None
    end: Optional[LonLat] = None


class RouteUpdateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "Success"
    message: str = "Route has been successfully updated"
    edge_count: int = Field(..., alias="edgeCount")
    total_distance: float = Field(..., alias="totalDistance", description="km")
    version: int = Field(..., description="Cache-busting token for the path layer")


class StatusResponse(BaseModel):
    status: str = "Success"
    message: str
    version: Optional[int] = None


class ErrorResponse(BaseModel):
    error: str


class PathLayerResponse(BaseModel):
    """Latest committed path for one algorithm, ready for a tile server."""
    model_config = ConfigDict(populate_by_name=True)

    algorithm: Algorithm
    version: int
    generation: Optional[int] = None
    start: Optional[list[float]] = None
    end: Optional[list[float]] = None
    source_node: Optional[int] = None
    target_node: Optional[int] = None
    edge_count: int = Field(default=0, alias="edgeCount")
    total_distance: float = Field(default=0.0, alias="totalDistance")
    geojson: GeoJSONFeatureCollection = Field(default_factory=GeoJSONFeatureCollection)


class NetworkSummary(BaseModel):
    generation: int
    nodes: int
    edges: int
    isolated_nodes: int
    connected_components: int
    bounds: Optional[list[float]] = Field(default=None, description="[min_lon, min_lat, max_lon, max_lat]")
    heuristic_scale: float
