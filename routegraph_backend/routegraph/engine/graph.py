"""
RouteGraph: Road graph data model
Nodes and edges live in contiguous lists; an id is the position in its list
and is only stable within one graph generation. The adjacency view is a
NetworkX MultiGraph derived from the edge list.
"""

import logging
from dataclasses import dataclass
from typing import Iterator, Optional

import networkx as nx
import numpy as np

from routegraph.core.exceptions import GraphInconsistency
from routegraph.engine.geodesy import Coordinate, great_circle_km

logger = logging.getLogger("routegraph.graph")


@dataclass(frozen=True)
class Node:
    """A point in the routable graph (road endpoint, vertex or intersection)."""
    id: int
    lon: float
    lat: float

    @property
    def coordinate(self) -> Coordinate:
        return (self.lon, self.lat)


@dataclass(frozen=True)
class Edge:
    """A segment between two consecutive nodes of one road line."""
    id: int
    source: int
    target: int
    cost: float
    reverse_cost: float
    geometry: tuple[Coordinate, ...]
    line_id: Optional[int] = None
    length_km: Optional[float] = None

    def step_cost(self, from_node: int) -> float:
        """Cost of traversing this edge starting at ``from_node``."""
        return self.cost if from_node == self.source else self.reverse_cost

    def other(self, node: int) -> int:
        return self.target if node == self.source else self.source

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "cost": self.cost,
            "reverse_cost": self.reverse_cost,
            "line_id": self.line_id,
            "length_km": self.length_km,
        }


class RoadGraph:
    """
    Immutable node/edge set plus the derived adjacency view.

    ``heuristic_scale`` is the smallest ratio of stored cost to the true
    great-circle length over all edges (capped at 1). Scaling the A*
    heuristic by it keeps the estimate admissible and consistent even when
    edge costs were rounded down.
    """

    def __init__(self, nodes: list[Node], edges: list[Edge], generation: int = 0) -> None:
        self.nodes = list(nodes)
        self.edges = list(edges)
        self.generation = generation
        self._validate()
        self._adjacency = self._to_multigraph()
        self.coordinates = np.array(
            [[n.lon, n.lat] for n in self.nodes], dtype=float
        ).reshape(-1, 2)
        self.heuristic_scale = self._compute_heuristic_scale()

    # ── Construction helpers ─────────────────────────────────

    def _validate(self) -> None:
        for i, node in enumerate(self.nodes):
            if node.id != i:
                raise GraphInconsistency(f"Node at position {i} carries id {node.id}")
        n = len(self.nodes)
        for i, edge in enumerate(self.edges):
            if edge.id != i:
                raise GraphInconsistency(f"Edge at position {i} carries id {edge.id}")
            if not (0 <= edge.source < n and 0 <= edge.target < n):
                raise GraphInconsistency(
                    f"Edge {edge.id} references missing node ({edge.source} -> {edge.target})"
                )
            if edge.cost < 0 or edge.reverse_cost < 0:
                raise GraphInconsistency(f"Edge {edge.id} has a negative cost")

    def _to_multigraph(self) -> nx.MultiGraph:
        G = nx.MultiGraph()
        for node in self.nodes:
            G.add_node(node.id, x=node.lon, y=node.lat)
        for edge in self.edges:
            G.add_edge(edge.source, edge.target, key=edge.id, edge=edge)
        return G

    def _compute_heuristic_scale(self) -> float:
        scale = 1.0
        for edge in self.edges:
            geodesic = great_circle_km(
                self.nodes[edge.source].coordinate, self.nodes[edge.target].coordinate
            )
            if geodesic <= 0:
                continue
            scale = min(scale, edge.cost / geodesic, edge.reverse_cost / geodesic)
        return max(scale, 0.0)

    # ── Public API ───────────────────────────────────────────

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def number_of_nodes(self) -> int:
        return len(self.nodes)

    def number_of_edges(self) -> int:
        return len(self.edges)

    def node(self, node_id: int) -> Node:
        if not 0 <= node_id < len(self.nodes):
            raise GraphInconsistency(f"Node {node_id} does not exist")
        return self.nodes[node_id]

    def edge(self, edge_id: int) -> Edge:
        if not 0 <= edge_id < len(self.edges):
            raise GraphInconsistency(f"Edge {edge_id} does not exist")
        return self.edges[edge_id]

    def incident(self, node_id: int) -> Iterator[tuple[Edge, int, float]]:
        """Yield ``(edge, neighbour, step_cost)`` for every edge touching ``node_id``."""
        for _, _, data in self._adjacency.edges(node_id, data=True):
            edge: Edge = data["edge"]
            yield edge, edge.other(node_id), edge.step_cost(node_id)

    def degree(self, node_id: int) -> int:
        return self._adjacency.degree(node_id)

    def to_networkx(self) -> nx.MultiGraph:
        """The adjacency view (shared, do not mutate)."""
        return self._adjacency

    def bounds(self) -> Optional[list[float]]:
        """[min_lon, min_lat, max_lon, max_lat] or None for an empty graph."""
        if self.is_empty:
            return None
        lo = self.coordinates.min(axis=0)
        hi = self.coordinates.max(axis=0)
        return [float(lo[0]), float(lo[1]), float(hi[0]), float(hi[1])]

    def summary(self) -> dict:
        return {
            "generation": self.generation,
            "nodes": self.number_of_nodes(),
            "edges": self.number_of_edges(),
            "isolated_nodes": sum(1 for n in self.nodes if self._adjacency.degree(n.id) == 0),
            "connected_components": nx.number_connected_components(self._adjacency) if self.nodes else 0,
            "bounds": self.bounds(),
            "heuristic_scale": round(self.heuristic_scale, 6),
        }
