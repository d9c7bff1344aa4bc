"""
Build the routable road graph offline and write it to the graph cache.
The server picks the cached graph up on its next start.

    cd routegraph_backend
    python build_graph.py --roads data/roads.geojson
    python build_graph.py --roads data/roads.geojson --route 77.59,12.97 77.62,12.98
"""

import argparse
import asyncio
import logging
import sys

from routegraph.core.config import settings
from routegraph.core.exceptions import NoPathFound
from routegraph.models.schemas import Algorithm
from routegraph.services.graph_builder import GraphBuilderService

logging.basicConfig(level=logging.INFO, stream=sys.stdout)
logger = logging.getLogger(__name__)


def _parse_point(text: str) -> tuple[float, float]:
    lon, lat = (float(v) for v in text.split(","))
    return lon, lat


def main() -> None:
    p = argparse.ArgumentParser(description="RouteGraph offline graph builder")
    p.add_argument("--roads", type=str, default=settings.roads_path, help="GeoJSON file with road lines")
    p.add_argument("--cache-dir", type=str, default=settings.cache_dir, help="Where the pickled graph is written")
    p.add_argument("--tolerance", type=float, default=settings.dedup_tolerance_deg, help="Node merge tolerance (degrees)")
    p.add_argument("--decimals", type=int, default=settings.cost_decimals, help="Edge cost rounding (km)")
    p.add_argument("--route", nargs=2, metavar=("START", "END"), help="Optional 'lon,lat' pair to route between")
    args = p.parse_args()

    service = GraphBuilderService(
        roads_path=args.roads,
        cache_dir=args.cache_dir,
        tolerance=args.tolerance,
        cost_decimals=args.decimals,
        use_cache=True,
    )
    graph = asyncio.run(service.rebuild())
    for key, value in graph.summary().items():
        logger.info(f"{key:>22}: {value}")

    if args.route:
        resolver, engine = service.get_resolver(), service.get_engine()
        source, _ = resolver.snap(_parse_point(args.route[0]))
        target, _ = resolver.snap(_parse_point(args.route[1]))
        for algorithm in Algorithm:
            try:
                result = engine.shortest_path(source, target, algorithm)
            except NoPathFound as e:
                logger.warning(str(e))
                continue
            logger.info(
                f"{algorithm.value:>8}: {result.edge_count} edges, "
                f"{result.total_cost:.2f} km, {result.expanded} nodes expanded"
            )


if __name__ == "__main__":
    main()
