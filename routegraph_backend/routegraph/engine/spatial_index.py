"""
RouteGraph: Spatial index and nearest-node resolver
Node coordinates are lifted onto the unit sphere before they go into the
KD-tree, so Euclidean (chord) nearest equals great-circle nearest at any
latitude.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.spatial import cKDTree

from routegraph.core.exceptions import GraphNotReady, InvalidInput
from routegraph.engine.geodesy import Coordinate, great_circle_km
from routegraph.engine.graph import RoadGraph
from routegraph.models.schemas import Algorithm

logger = logging.getLogger("routegraph.spatial_index")


def _to_unit_sphere(lonlat: np.ndarray) -> np.ndarray:
    lon = np.radians(lonlat[:, 0])
    lat = np.radians(lonlat[:, 1])
    return np.column_stack(
        [np.cos(lat) * np.cos(lon), np.cos(lat) * np.sin(lon), np.sin(lat)]
    )


class SpatialIndex:
    """Nearest-neighbour lookup over the node set of one graph."""

    def __init__(self, graph: RoadGraph) -> None:
        self._graph = graph
        self._tree: Optional[cKDTree] = None
        if not graph.is_empty:
            self._tree = cKDTree(_to_unit_sphere(graph.coordinates))

    def nearest(self, coordinate: Coordinate) -> int:
        if self._tree is None:
            raise GraphNotReady("Cannot snap against an empty graph")
        q = _to_unit_sphere(np.array([coordinate], dtype=float))[0]
        _, idx = self._tree.query(q, k=1)
        return int(idx)


@dataclass
class QueryContext:
    """Everything one request carries through resolver → engine → coordinator."""
    start: Coordinate
    end: Coordinate
    algorithm: Algorithm
    source: Optional[int] = None
    target: Optional[int] = None
    source_snap_km: Optional[float] = None
    target_snap_km: Optional[float] = None
    generation: Optional[int] = None

    @property
    def is_resolved(self) -> bool:
        return self.source is not None and self.target is not None

    def cache_key(self) -> tuple:
        return (self.start, self.end, self.algorithm.value, self.generation)


class NearestNodeResolver:
    """Snaps query points to their closest graph node."""

    def __init__(self, graph: RoadGraph, max_snap_distance_km: Optional[float] = None) -> None:
        self._graph = graph
        self._index = SpatialIndex(graph)
        self.max_snap_distance_km = max_snap_distance_km

    @property
    def graph(self) -> RoadGraph:
        return self._graph

    def snap(self, coordinate: Coordinate) -> tuple[int, float]:
        """Return ``(node_id, distance_km)`` for the node closest to ``coordinate``."""
        node_id = self._index.nearest(coordinate)
        distance = great_circle_km(coordinate, self._graph.nodes[node_id].coordinate)
        if self.max_snap_distance_km is not None and distance > self.max_snap_distance_km:
            raise InvalidInput(
                f"Point {coordinate} is {distance:.3f} km from the network "
                f"(limit {self.max_snap_distance_km} km)"
            )
        return node_id, distance

    def resolve(self, ctx: QueryContext) -> QueryContext:
        ctx.source, ctx.source_snap_km = self.snap(ctx.start)
        ctx.target, ctx.target_snap_km = self.snap(ctx.end)
        ctx.generation = self._graph.generation
        logger.info(
            f"Snapped start {ctx.start} → node {ctx.source} ({ctx.source_snap_km:.3f} km), "
            f"end {ctx.end} → node {ctx.target} ({ctx.target_snap_km:.3f} km)"
        )
        return ctx
