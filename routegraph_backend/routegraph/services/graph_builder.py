"""
RouteGraph: Road Graph Service
Loads the road dataset (GeoJSON lines), builds the routable topology off the
event loop, caches it on disk and hands out the resolver/engine bound to the
current graph generation.
"""

import asyncio
import hashlib
import json
import logging
import os
import pickle
from pathlib import Path
from typing import Optional, Sequence

from shapely.geometry import LineString, shape

from routegraph.core.config import settings
from routegraph.core.exceptions import GraphNotReady, InvalidGeometry
from routegraph.engine.graph import RoadGraph
from routegraph.engine.router import ShortestPathEngine
from routegraph.engine.spatial_index import NearestNodeResolver
from routegraph.engine.topology import LineInput, TopologyBuilder

logger = logging.getLogger("routegraph.graph_builder")


def load_road_lines(path: Path) -> list[LineString]:
    """Read a GeoJSON FeatureCollection and flatten it into LineStrings."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if data.get("type") == "FeatureCollection":
        geometries = [f.get("geometry") for f in data.get("features", [])]
    else:
        geometries = [data.get("geometry", data)]

    lines: list[LineString] = []
    for i, geom in enumerate(geometries):
        if not geom:
            continue
        try:
            g = shape(geom)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            raise InvalidGeometry(f"Feature {i} has an unreadable geometry: {e}") from e
        if g.geom_type == "LineString":
            lines.append(g)
        elif g.geom_type == "MultiLineString":
            lines.extend(g.geoms)
        else:
            logger.warning(f"Skipping unsupported geometry type: {g.geom_type} (feature {i})")
    return lines


class GraphBuilderService:
    """Manages the road network graph and everything derived from it."""

    def __init__(
        self,
        roads_path: Optional[str] = None,
        cache_dir: Optional[str] = None,
        tolerance: Optional[float] = None,
        cost_decimals: Optional[int] = None,
        use_cache: Optional[bool] = None,
        max_snap_distance_km: Optional[float] = None,
    ) -> None:
        self.roads_path = Path(roads_path or settings.roads_path)
        self.cache_dir = Path(cache_dir or settings.cache_dir)
        self.use_cache = settings.use_graph_cache if use_cache is None else use_cache
        self.max_snap_distance_km = (
            max_snap_distance_km if max_snap_distance_km is not None else settings.max_snap_distance_km
        )
        self._builder = TopologyBuilder(
            tolerance=tolerance if tolerance is not None else settings.dedup_tolerance_deg,
            cost_decimals=cost_decimals if cost_decimals is not None else settings.cost_decimals,
        )
        self._graph: Optional[RoadGraph] = None
        self._resolver: Optional[NearestNodeResolver] = None
        self._engine: Optional[ShortestPathEngine] = None

    # ── Public API ─────────────────────────────────────────

    async def initialize(self) -> None:
        """Load from cache or build the graph from the road dataset."""
        if not self.roads_path.exists():
            logger.warning(f"Road dataset not found at {self.roads_path}; starting with an empty graph")
            self._install(RoadGraph([], [], generation=self._next_generation()))
            return

        cache_path = self._cache_path()
        if self.use_cache and cache_path.exists():
            logger.info(f"Loading cached graph from {cache_path}")
            graph = await asyncio.to_thread(self._load_from_cache, cache_path)
        else:
            logger.info(f"Building road graph from {self.roads_path}…")
            graph = await asyncio.to_thread(self._build_from_file, self._next_generation())
            if self.use_cache:
                await asyncio.to_thread(self._save_to_cache, graph, cache_path)

        self._install(graph)

    async def rebuild(self) -> RoadGraph:
        """Rebuild from the dataset, ignoring the cache. Replaces the graph atomically."""
        if not self.roads_path.exists():
            raise FileNotFoundError(f"Road dataset not found: {self.roads_path}")
        logger.info(f"Rebuilding road graph from {self.roads_path}…")
        graph = await asyncio.to_thread(self._build_from_file, self._next_generation())
        if self.use_cache:
            await asyncio.to_thread(self._save_to_cache, graph, self._cache_path())
        self._install(graph)
        return graph

    def build_from_lines(self, lines: Sequence[LineInput]) -> RoadGraph:
        """Build and install a graph from in-memory lines (offline use, tests)."""
        graph = self._builder.build(lines, generation=self._next_generation())
        self._install(graph)
        return graph

    def is_ready(self) -> bool:
        return self._graph is not None

    def get_graph(self) -> RoadGraph:
        if self._graph is None:
            raise GraphNotReady("Graph not initialized. Call initialize() first.")
        return self._graph

    def get_resolver(self) -> NearestNodeResolver:
        if self._resolver is None or self._graph is None or self._graph.is_empty:
            raise GraphNotReady("Road graph is not loaded or has no nodes")
        return self._resolver

    def get_engine(self) -> ShortestPathEngine:
        if self._engine is None:
            raise GraphNotReady("Graph not initialized.")
        return self._engine

    def get_nearest_node(self, lon: float, lat: float) -> int:
        """Nearest graph node to the given lon/lat."""
        node_id, _ = self.get_resolver().snap((lon, lat))
        return node_id

    def get_segment_geometries(self) -> list[dict]:
        """Road network edges as GeoJSON features for the tile server."""
        graph = self.get_graph()
        features: list[dict] = []
        for edge in graph.edges:
            features.append({
                "type": "Feature",
                "geometry": {
                    "type": "LineString",
                    "coordinates": [list(c) for c in edge.geometry],
                },
                "properties": edge.to_dict(),
            })
        return features

    # ── Internals ──────────────────────────────────────────

    def _install(self, graph: RoadGraph) -> None:
        resolver = NearestNodeResolver(graph, max_snap_distance_km=self.max_snap_distance_km)
        engine = ShortestPathEngine(graph)
        self._graph, self._resolver, self._engine = graph, resolver, engine
        logger.info(
            f"Graph ready (generation {graph.generation}): "
            f"{graph.number_of_nodes()} nodes, {graph.number_of_edges()} edges"
        )

    def _next_generation(self) -> int:
        return (self._graph.generation + 1) if self._graph is not None else 1

    def _build_from_file(self, generation: int) -> RoadGraph:
        lines = load_road_lines(self.roads_path)
        return self._builder.build(lines, generation=generation)

    def _cache_path(self) -> Path:
        digest = hashlib.sha256()
        digest.update(self.roads_path.read_bytes())
        digest.update(f"{self._builder.tolerance}:{self._builder.cost_decimals}".encode())
        return self.cache_dir / f"roadgraph_{digest.hexdigest()[:16]}.pkl"

    # ── Persistence ────────────────────────────────────────

    def _load_from_cache(self, path: Path) -> RoadGraph:
        with open(path, "rb") as f:
            graph: RoadGraph = pickle.load(f)
        graph.generation = self._next_generation()
        return graph

    def _save_to_cache(self, graph: RoadGraph, path: Path) -> None:
        os.makedirs(path.parent, exist_ok=True)
        with open(path, "wb") as f:
            pickle.dump(graph, f, protocol=5)
        logger.info(f"Graph cached to {path}")
