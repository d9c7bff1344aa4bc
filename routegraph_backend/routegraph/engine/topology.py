"""
RouteGraph: Topology construction
Turns disconnected road lines into a routable node/edge graph:

1. Candidate points = every line vertex, then every point where two lines cross.
2. Candidates closer than the tolerance collapse into one node (first seen wins).
3. Each line is cut at every node lying within the tolerance of it, in order
   of projection along the line; consecutive nodes become an edge whose cost
   is the great-circle distance between them.
"""

import logging
import math
from typing import Iterable, Optional, Sequence, Union

from shapely.geometry import LineString, Point
from shapely.geometry.base import BaseGeometry
from shapely.strtree import STRtree

from routegraph.core.exceptions import InvalidGeometry
from routegraph.engine.geodesy import Coordinate, ensure_finite, great_circle_km
from routegraph.engine.graph import Edge, Node, RoadGraph

logger = logging.getLogger("routegraph.topology")

LineInput = Union[LineString, Sequence[Coordinate]]


# ═══════════════════════════════════════════════════════════════
# Geometry Deduplicator
# ═══════════════════════════════════════════════════════════════

def deduplicate(
    candidates: Iterable[Coordinate],
    tolerance: float = 1e-4,
) -> tuple[list[Node], list[int]]:
    """
    Collapse candidate coordinates into unique nodes.

    A candidate closer than ``tolerance`` (strictly) to an existing node is
    merged into it; the node keeps the coordinate of the first candidate that
    created it. When several nodes are in range the nearest wins, lower id on
    ties. Returns the nodes and, for each candidate, the id it mapped to.

    Lookup is bucketed on a grid of ``tolerance``-sized cells so only the
    3x3 neighbourhood of a candidate is scanned.
    """
    if not tolerance > 0:
        raise ValueError("tolerance must be positive")

    nodes: list[Node] = []
    assignment: list[int] = []
    grid: dict[tuple[int, int], list[int]] = {}

    for coord in candidates:
        lon, lat = ensure_finite(coord, "candidate point")
        cx, cy = math.floor(lon / tolerance), math.floor(lat / tolerance)

        best, best_d = -1, tolerance
        for gx in (cx - 1, cx, cx + 1):
            for gy in (cy - 1, cy, cy + 1):
                for nid in grid.get((gx, gy), ()):
                    n = nodes[nid]
                    d = math.hypot(n.lon - lon, n.lat - lat)
                    if d < best_d or (d == best_d and best >= 0 and nid < best):
                        best, best_d = nid, d

        if best >= 0:
            assignment.append(best)
            continue

        nid = len(nodes)
        nodes.append(Node(id=nid, lon=lon, lat=lat))
        grid.setdefault((cx, cy), []).append(nid)
        assignment.append(nid)

    return nodes, assignment


def _point_parts(geom: BaseGeometry) -> list[Coordinate]:
    """Point components of an intersection result; line overlaps are ignored."""
    if geom.is_empty:
        return []
    if geom.geom_type == "Point":
        return [(geom.x, geom.y)]
    if geom.geom_type in ("MultiPoint", "GeometryCollection"):
        out: list[Coordinate] = []
        for part in geom.geoms:
            out.extend(_point_parts(part))
        return out
    return []


def line_intersections(lines: Sequence[LineString]) -> list[Coordinate]:
    """Crossing points of every pair of lines, in (i, j) pair order."""
    if len(lines) < 2:
        return []
    tree = STRtree(lines)
    points: list[Coordinate] = []
    for i, line in enumerate(lines):
        for j in sorted(int(k) for k in tree.query(line, predicate="intersects")):
            if j <= i:
                continue
            points.extend(_point_parts(line.intersection(lines[j])))
    return points


# ═══════════════════════════════════════════════════════════════
# Topology Builder
# ═══════════════════════════════════════════════════════════════

class TopologyBuilder:
    """Builds a RoadGraph from raw road lines."""

    def __init__(self, tolerance: float = 1e-4, cost_decimals: Optional[int] = 2) -> None:
        if not tolerance > 0:
            raise ValueError("tolerance must be positive")
        self.tolerance = tolerance
        self.cost_decimals = cost_decimals

    def build(self, lines: Sequence[LineInput], generation: int = 0) -> RoadGraph:
        geoms = [self._as_linestring(i, line) for i, line in enumerate(lines)]

        vertices = [c for g in geoms for c in g.coords]
        crossings = line_intersections(geoms)
        nodes, _ = deduplicate(vertices + crossings, self.tolerance)
        logger.info(
            f"Deduplicated {len(vertices)} vertices + {len(crossings)} crossings "
            f"into {len(nodes)} nodes"
        )

        node_tree = STRtree([Point(n.lon, n.lat) for n in nodes]) if nodes else None
        edges: list[Edge] = []
        for line_id, line in enumerate(geoms):
            ordered = self._nodes_along(line, nodes, node_tree)
            if line.is_closed and len(ordered) > 2:
                ordered.append(ordered[0])
            for a, b in zip(ordered, ordered[1:]):
                edges.append(self._make_edge(len(edges), nodes[a], nodes[b], line_id))

        graph = RoadGraph(nodes, edges, generation=generation)
        logger.info(
            f"Topology built from {len(geoms)} lines: "
            f"{graph.number_of_nodes()} nodes, {graph.number_of_edges()} edges"
        )
        return graph

    # ── Internals ────────────────────────────────────────────

    def _as_linestring(self, index: int, line: LineInput) -> LineString:
        raw = line.coords if isinstance(line, LineString) else line
        coords = [ensure_finite(c, f"vertex of line {index}") for c in raw]
        if len(coords) < 2:
            raise InvalidGeometry(f"Line {index} has fewer than two vertices")
        return LineString(coords)

    def _nodes_along(self, line: LineString, nodes: list[Node], tree: Optional[STRtree]) -> list[int]:
        """Ids of nodes within tolerance of ``line``, ordered by projection fraction."""
        if tree is None or line.length == 0:
            return []
        hits = tree.query(line, predicate="dwithin", distance=self.tolerance)
        located = []
        for k in hits:
            node = nodes[int(k)]
            fraction = line.project(Point(node.lon, node.lat), normalized=True)
            located.append((fraction, node.id))
        located.sort()
        return [nid for _, nid in located]

    def _make_edge(self, edge_id: int, a: Node, b: Node, line_id: int) -> Edge:
        length = great_circle_km(a.coordinate, b.coordinate)
        cost = round(length, self.cost_decimals) if self.cost_decimals is not None else length
        return Edge(
            id=edge_id,
            source=a.id,
            target=b.id,
            cost=cost,
            reverse_cost=cost,
            geometry=(a.coordinate, b.coordinate),
            line_id=line_id,
            length_km=length,
        )


def build_topology(
    lines: Sequence[LineInput],
    tolerance: float = 1e-4,
    cost_decimals: Optional[int] = 2,
    generation: int = 0,
) -> RoadGraph:
    """Convenience wrapper around TopologyBuilder."""
    return TopologyBuilder(tolerance=tolerance, cost_decimals=cost_decimals).build(lines, generation)
