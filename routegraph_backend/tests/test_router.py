import itertools

import networkx as nx
import pytest

from conftest import A, C, grid_lines, make_graph
from routegraph.core.exceptions import GraphInconsistency, NoPathFound
from routegraph.engine.geodesy import great_circle_km
from routegraph.engine.router import ShortestPathEngine
from routegraph.engine.topology import build_topology
from routegraph.models.schemas import Algorithm


@pytest.fixture(scope="module")
def grid_graph():
    return build_topology(grid_lines(n=5))


def _nx_length(graph, s, t):
    return nx.dijkstra_path_length(
        graph.to_networkx(), s, t, weight=lambda u, v, d: min(e["edge"].cost for e in d.values())
    )


# ---------- Scenarios


@pytest.mark.parametrize("algorithm", list(Algorithm))
def test_abc_scenario(abc_graph, algorithm):
    result = ShortestPathEngine(abc_graph).shortest_path(0, 2, algorithm)
    assert result.edge_count == 2
    assert round(result.total_cost, 2) == 2.00
    assert result.node_sequence() == [0, 1, 2]
    assert result.algorithm == algorithm


@pytest.mark.parametrize("algorithm", list(Algorithm))
def test_reverse_direction_uses_reverse_cost(abc_graph, algorithm):
    result = ShortestPathEngine(abc_graph).shortest_path(2, 0, algorithm)
    assert result.node_sequence() == [2, 1, 0]
    assert result.total_cost == pytest.approx(2.0)


@pytest.mark.parametrize("algorithm", list(Algorithm))
def test_same_node_is_empty_path(abc_graph, algorithm):
    result = ShortestPathEngine(abc_graph).shortest_path(1, 1, algorithm)
    assert result.edge_count == 0
    assert result.total_cost == 0.0
    assert result.to_geojson()["features"] == []


@pytest.mark.parametrize("algorithm", list(Algorithm))
def test_disconnected_raises_no_path(algorithm):
    graph = make_graph([A, C, (1.0, 1.0), (1.0, 1.01)], [(0, 1, 2.0), (2, 3, 1.1)])
    with pytest.raises(NoPathFound) as exc:
        ShortestPathEngine(graph).shortest_path(0, 3, algorithm)
    assert exc.value.source == 0 and exc.value.target == 3


def test_isolated_node_is_unreachable_but_harmless():
    graph = make_graph([A, C, (2.0, 2.0)], [(0, 1, 2.0)])
    engine = ShortestPathEngine(graph)
    assert engine.dijkstra(0, 1).edge_count == 1
    with pytest.raises(NoPathFound):
        engine.astar(0, 2)


def test_unknown_node_is_inconsistency(abc_graph):
    with pytest.raises(GraphInconsistency):
        ShortestPathEngine(abc_graph).dijkstra(0, 42)


def test_picks_cheaper_of_parallel_edges():
    graph = make_graph([A, C], [(0, 1, 3.0), (0, 1, 2.0)])
    result = ShortestPathEngine(graph).dijkstra(0, 1)
    assert [e.id for e in result.edges] == [1]
    assert result.total_cost == 2.0


# ---------- Tie-break


def test_equal_priority_pops_most_recent_entry():
    # square 0-1-2-3: two equal-cost routes from 0 to 2
    coords = [(0.0, 0.0), (0.01, 0.0), (0.01, 0.01), (0.0, 0.01)]
    graph = make_graph(coords, [(0, 1, 1.0), (1, 2, 1.0), (0, 3, 1.0), (3, 2, 1.0)])
    engine = ShortestPathEngine(graph)
    runs = [engine.dijkstra(0, 2) for _ in range(3)]
    # neighbour 3 is pushed after neighbour 1, so it is expanded first
    assert all([e.id for e in r.edges] == [2, 3] for r in runs)
    assert all(r.total_cost == 2.0 for r in runs)


# ---------- Properties


def test_astar_matches_dijkstra_on_every_pair(grid_graph):
    engine = ShortestPathEngine(grid_graph)
    for s, t in itertools.combinations(range(grid_graph.number_of_nodes()), 2):
        d = engine.dijkstra(s, t)
        a = engine.astar(s, t)
        assert a.total_cost == pytest.approx(d.total_cost)


def test_dijkstra_matches_networkx_reference(grid_graph):
    engine = ShortestPathEngine(grid_graph)
    for s, t in itertools.combinations(range(0, grid_graph.number_of_nodes(), 3), 2):
        assert engine.dijkstra(s, t).total_cost == pytest.approx(_nx_length(grid_graph, s, t))


def test_astar_expands_no_more_than_dijkstra(grid_graph):
    engine = ShortestPathEngine(grid_graph)
    corners = [0, grid_graph.number_of_nodes() - 1]
    d = engine.dijkstra(*corners)
    a = engine.astar(*corners)
    assert a.expanded <= d.expanded


def test_total_cost_at_least_great_circle():
    graph = build_topology(grid_lines(n=5), cost_decimals=None)
    engine = ShortestPathEngine(graph)
    for s, t in itertools.combinations(range(0, graph.number_of_nodes(), 2), 2):
        result = engine.astar(s, t)
        gc = great_circle_km(graph.nodes[s].coordinate, graph.nodes[t].coordinate)
        assert result.total_cost + 1e-9 >= gc


def test_rounded_total_stays_within_half_a_unit_per_edge_of_great_circle():
    # 11 vertices 0.00013 deg apart: each 0.0145 km edge is stored as 0.01
    line = [(i * 0.00013, 0.0) for i in range(11)]
    graph = build_topology([line])
    result = ShortestPathEngine(graph).dijkstra(0, 10)
    gc = great_circle_km(graph.nodes[0].coordinate, graph.nodes[10].coordinate)
    assert result.edge_count == 10
    assert result.total_cost < gc
    assert result.total_cost >= gc - 0.005 * result.edge_count
    # the unrounded lengths still honour the bound
    assert sum(e.length_km for e in result.edges) + 1e-9 >= gc


def test_rounded_grid_totals_within_rounding_bound(grid_graph):
    engine = ShortestPathEngine(grid_graph)
    for s, t in itertools.combinations(range(0, grid_graph.number_of_nodes(), 2), 2):
        result = engine.dijkstra(s, t)
        gc = great_circle_km(grid_graph.nodes[s].coordinate, grid_graph.nodes[t].coordinate)
        assert result.total_cost + 1e-9 >= gc - 0.005 * result.edge_count


def test_round_trip_costs_are_symmetric(grid_graph):
    engine = ShortestPathEngine(grid_graph)
    last = grid_graph.number_of_nodes() - 1
    there = engine.dijkstra(0, last)
    back = engine.dijkstra(last, 0)
    assert there.total_cost == pytest.approx(back.total_cost)
    for edge in grid_graph.edges:
        assert edge.step_cost(edge.source) == edge.step_cost(edge.target) >= 0


def test_path_edges_are_contiguous(grid_graph):
    engine = ShortestPathEngine(grid_graph)
    result = engine.astar(0, grid_graph.number_of_nodes() - 1)
    nodes = result.node_sequence()
    assert nodes[0] == result.source and nodes[-1] == result.target
    assert result.total_cost == pytest.approx(sum(e.cost for e in result.edges))


def test_geojson_is_oriented_source_to_target(abc_graph):
    result = ShortestPathEngine(abc_graph).astar(2, 0)
    features = result.to_geojson()["features"]
    assert [f["properties"]["seq"] for f in features] == [0, 1]
    assert features[0]["geometry"]["coordinates"][0] == list(abc_graph.nodes[2].coordinate)
    assert features[-1]["geometry"]["coordinates"][-1] == list(abc_graph.nodes[0].coordinate)
