import logging
import sys

from conftest import C
import build_graph


def test_cli_builds_caches_and_routes(tmp_path, roads_file, monkeypatch, caplog):
    cache_dir = tmp_path / "cli-cache"
    monkeypatch.setattr(sys, "argv", [
        "build_graph.py",
        "--roads", str(roads_file),
        "--cache-dir", str(cache_dir),
        "--route", "0,0", f"0,{C[1]}",
    ])
    with caplog.at_level(logging.INFO):
        build_graph.main()

    assert len(list(cache_dir.glob("*.pkl"))) == 1
    messages = [r.getMessage() for r in caplog.records if r.name == "build_graph"]
    assert any(m.strip() == "nodes: 5" for m in messages)
    assert any(m.strip().startswith("dijkstra: 2 edges, 2.00 km") for m in messages)
    assert any(m.strip().startswith("astar: 2 edges, 2.00 km") for m in messages)


def test_cli_reports_unreachable_route(tmp_path, roads_file, monkeypatch, caplog):
    monkeypatch.setattr(sys, "argv", [
        "build_graph.py",
        "--roads", str(roads_file),
        "--cache-dir", str(tmp_path / "cli-cache"),
        "--route", "0,0", "1,1",
    ])
    with caplog.at_level(logging.INFO):
        build_graph.main()

    warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING and r.name == "build_graph"]
    assert len(warnings) == 2
    assert all("No path found" in w for w in warnings)
