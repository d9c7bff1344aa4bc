import json

import numpy as np
import pytest

from routegraph.engine.geodesy import EARTH_RADIUS_KM
from routegraph.engine.graph import Edge, Node, RoadGraph
from routegraph.services.graph_builder import GraphBuilderService

# degrees of latitude per km along a meridian
DEG_PER_KM = 180.0 / (np.pi * EARTH_RADIUS_KM)

A = (0.0, 0.0)
B = (0.0, 1 * DEG_PER_KM)
C = (0.0, 2 * DEG_PER_KM)


def make_graph(coords, links, generation=1) -> RoadGraph:
    """links: (source, target, cost) triples; reverse cost equals cost."""
    nodes = [Node(id=i, lon=lon, lat=lat) for i, (lon, lat) in enumerate(coords)]
    edges = [
        Edge(
            id=i,
            source=s,
            target=t,
            cost=cost,
            reverse_cost=cost,
            geometry=(coords[s], coords[t]),
        )
        for i, (s, t, cost) in enumerate(links)
    ]
    return RoadGraph(nodes, edges, generation=generation)


def grid_lines(n=5, spacing=0.01, jitter=0.002, seed=7):
    """n horizontal + n vertical two-point roads crossing each other."""
    rng = np.random.default_rng(seed)
    lo, hi = -spacing / 2, spacing * (n - 1) + spacing / 2
    lines = []
    for i in range(n):
        y0, y1 = (i * spacing + rng.uniform(-jitter, jitter) for _ in range(2))
        lines.append([(lo, y0), (hi, y1)])
    for i in range(n):
        x0, x1 = (i * spacing + rng.uniform(-jitter, jitter) for _ in range(2))
        lines.append([(x0, lo), (x1, hi)])
    return lines


@pytest.fixture
def abc_graph() -> RoadGraph:
    return make_graph([A, B, C], [(0, 1, 1.0), (1, 2, 1.0)])


@pytest.fixture
def abc_lines():
    # one road A→C plus a disconnected road far away
    return [
        [A, B, C],
        [(1.0, 1.0), (1.0, 1.0 + DEG_PER_KM)],
    ]


@pytest.fixture
def service(tmp_path, abc_lines) -> GraphBuilderService:
    svc = GraphBuilderService(
        roads_path=str(tmp_path / "roads.geojson"),
        cache_dir=str(tmp_path / "cache"),
        use_cache=False,
    )
    svc.build_from_lines(abc_lines)
    return svc


@pytest.fixture
def roads_file(tmp_path, abc_lines):
    path = tmp_path / "roads.geojson"
    features = [
        {"type": "Feature", "geometry": {"type": "LineString", "coordinates": [list(c) for c in line]}, "properties": {}}
        for line in abc_lines
    ]
    path.write_text(json.dumps({"type": "FeatureCollection", "features": features}), encoding="utf-8")
    return path
