"""
RouteGraph: Shortest-Path Engine
Two interchangeable searches over the undirected road graph:

1. Uniform-cost (Dijkstra): frontier keyed by accumulated cost.
2. Heuristic-guided (A*): frontier keyed by accumulated cost plus the
   great-circle distance to the target, scaled by the graph's
   ``heuristic_scale`` so the estimate never exceeds the remaining cost.

Both relax an edge forward with ``cost`` and backward with ``reverse_cost``.
Frontier ties pop the most recently pushed entry first.
"""

import heapq
import itertools
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from routegraph.core.exceptions import NoPathFound
from routegraph.engine.geodesy import great_circle_km
from routegraph.engine.graph import Edge, RoadGraph
from routegraph.models.schemas import Algorithm

logger = logging.getLogger("routegraph.router")


class SearchState(str, Enum):
    INITIALIZED = "initialized"
    EXPANDING = "expanding"
    FOUND = "found"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class PathResult:
    """An ordered edge sequence from ``source`` to ``target``."""
    algorithm: Algorithm
    source: int
    target: int
    edges: tuple[Edge, ...]
    total_cost: float
    expanded: int = 0
    generation: int = 0

    @property
    def edge_count(self) -> int:
        return len(self.edges)

    def node_sequence(self) -> list[int]:
        nodes = [self.source]
        for edge in self.edges:
            nodes.append(edge.other(nodes[-1]))
        return nodes

    def to_geojson(self) -> dict:
        """Path edges as a GeoJSON FeatureCollection, oriented source → target."""
        features = []
        current = self.source
        for seq, edge in enumerate(self.edges):
            coords = [list(c) for c in edge.geometry]
            if current != edge.source:
                coords.reverse()
            features.append({
                "type": "Feature",
                "geometry": {"type": "LineString", "coordinates": coords},
                "properties": {
                    "seq": seq,
                    "edge_id": edge.id,
                    "cost": edge.step_cost(current),
                    "algorithm": self.algorithm.value,
                },
            })
            current = edge.other(current)
        return {"type": "FeatureCollection", "features": features}


class ShortestPathEngine:
    """Runs Dijkstra or A* between two nodes of one RoadGraph."""

    def __init__(self, graph: RoadGraph) -> None:
        self._graph = graph

    @property
    def graph(self) -> RoadGraph:
        return self._graph

    def shortest_path(self, source: int, target: int, algorithm: Algorithm) -> PathResult:
        if algorithm == Algorithm.DIJKSTRA:
            return self.dijkstra(source, target)
        if algorithm == Algorithm.ASTAR:
            return self.astar(source, target)
        raise ValueError(f"Unknown algorithm: {algorithm}")

    # ═══════════════════════════════════════════════════════════
    # Uniform-cost search
    # ═══════════════════════════════════════════════════════════

    def dijkstra(self, source: int, target: int) -> PathResult:
        return self._search(source, target, Algorithm.DIJKSTRA, heuristic=None)

    # ═══════════════════════════════════════════════════════════
    # Heuristic-guided search
    # ═══════════════════════════════════════════════════════════

    def astar(self, source: int, target: int) -> PathResult:
        goal = self._graph.node(target).coordinate
        scale = self._graph.heuristic_scale
        nodes = self._graph.nodes

        def heuristic(n: int) -> float:
            return scale * great_circle_km(nodes[n].coordinate, goal)

        return self._search(source, target, Algorithm.ASTAR, heuristic=heuristic)

    # ═══════════════════════════════════════════════════════════
    # Shared frontier expansion
    # ═══════════════════════════════════════════════════════════

    def _search(
        self,
        source: int,
        target: int,
        algorithm: Algorithm,
        heuristic: Optional[Callable[[int], float]],
    ) -> PathResult:
        graph = self._graph
        graph.node(source)
        graph.node(target)
        state = SearchState.INITIALIZED

        if source == target:
            return PathResult(algorithm, source, target, (), 0.0, 0, graph.generation)

        h = heuristic or (lambda n: 0.0)
        seq = itertools.count()
        best: dict[int, float] = {source: 0.0}
        via: dict[int, Edge] = {}
        visited: set[int] = set()
        # (priority, -insertion order, node): equal priorities pop newest first
        frontier = [(h(source), -next(seq), source)]
        expanded = 0

        state = SearchState.EXPANDING
        while frontier:
            _, _, u = heapq.heappop(frontier)
            if u in visited:
                continue
            visited.add(u)
            expanded += 1
            if u == target:
                state = SearchState.FOUND
                break
            du = best[u]
            for edge, v, step in graph.incident(u):
                if v in visited:
                    continue
                nd = du + step
                if nd < best.get(v, math.inf):
                    best[v] = nd
                    via[v] = edge
                    heapq.heappush(frontier, (nd + h(v), -next(seq), v))

        if state != SearchState.FOUND:
            state = SearchState.EXHAUSTED
            logger.warning(
                f"No {algorithm.value} path from {source} to {target} "
                f"({expanded} nodes expanded, frontier {state.value})"
            )
            raise NoPathFound(source, target)

        edges = self._unwind(source, target, via)
        total = 0.0
        current = source
        for edge in edges:
            total += edge.step_cost(current)
            current = edge.other(current)

        logger.debug(
            f"{algorithm.value}: {source} → {target} in {len(edges)} edges, "
            f"cost {total:.3f}, {expanded} nodes expanded"
        )
        return PathResult(algorithm, source, target, tuple(edges), total, expanded, graph.generation)

    @staticmethod
    def _unwind(source: int, target: int, via: dict[int, Edge]) -> list[Edge]:
        edges: list[Edge] = []
        node = target
        while node != source:
            edge = via[node]
            edges.append(edge)
            node = edge.other(node)
        edges.reverse()
        return edges
