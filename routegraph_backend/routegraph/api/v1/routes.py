"""
RouteGraph: Routing API Routes (v1)
Endpoints: /update-route, /astar-route, /clear-shortest-path, /clear-astar-path,
/reset-all, /paths/{algorithm}, /network/*
"""

import logging

from fastapi import APIRouter, HTTPException

from routegraph.core import events
from routegraph.core.config import settings
from routegraph.models.schemas import (
    Algorithm,
    ErrorResponse,
    GeoJSONFeature,
    GeoJSONFeatureCollection,
    NetworkSummary,
    PathLayerResponse,
    RouteRequest,
    RouteUpdateResponse,
    StatusResponse,
)
from routegraph.services.graph_builder import GraphBuilderService
from routegraph.services.path_coordinator import PathCoordinator

logger = logging.getLogger("routegraph.api.routes")

router = APIRouter(prefix="/api/v1", tags=["Routing"])

_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def _services() -> tuple[GraphBuilderService, PathCoordinator]:
    graph_service, coordinator = events.graph_service, events.coordinator
    if not graph_service or not graph_service.is_ready() or coordinator is None:
        raise HTTPException(status_code=503, detail="Graph still loading, please wait a moment and retry")
    return graph_service, coordinator


def _round(value: float) -> float:
    return round(value, settings.cost_decimals)


async def _submit(request: RouteRequest, algorithm: Algorithm) -> RouteUpdateResponse:
    _, coordinator = _services()
    logger.info(f"{algorithm.value} request: start={request.start} end={request.end}")
    result = await coordinator.submit_query(
        request.start.as_tuple() if request.start else None,
        request.end.as_tuple() if request.end else None,
        algorithm,
    )
    return RouteUpdateResponse(
        edge_count=result.edge_count,
        total_distance=_round(result.total_cost),
        version=coordinator.version(algorithm),
    )


# ═══════════════════════════════════════════════════════════════
# Path computation
# ═══════════════════════════════════════════════════════════════

@router.post("/update-route", response_model=RouteUpdateResponse, responses=_ERRORS)
async def update_route(request: RouteRequest):
    """Snap start/end to the network and materialize the Dijkstra path."""
    return await _submit(request, Algorithm.DIJKSTRA)


@router.post("/astar-route", response_model=RouteUpdateResponse, responses=_ERRORS)
async def astar_route(request: RouteRequest):
    """Snap start/end to the network and materialize the A* path."""
    return await _submit(request, Algorithm.ASTAR)


# ═══════════════════════════════════════════════════════════════
# Clearing
# ═══════════════════════════════════════════════════════════════

@router.post("/clear-shortest-path", response_model=StatusResponse, responses=_ERRORS)
async def clear_shortest_path():
    _, coordinator = _services()
    version = await coordinator.clear(Algorithm.DIJKSTRA)
    return StatusResponse(message="Shortest path data cleared", version=version)


@router.post("/clear-astar-path", response_model=StatusResponse, responses=_ERRORS)
async def clear_astar_path():
    _, coordinator = _services()
    version = await coordinator.clear(Algorithm.ASTAR)
    return StatusResponse(message="A* shortest path data cleared", version=version)


@router.post("/reset-all", response_model=StatusResponse, responses=_ERRORS)
async def reset_all():
    _, coordinator = _services()
    await coordinator.reset_all()
    return StatusResponse(message="Points cleared and path results reset.")


# ═══════════════════════════════════════════════════════════════
# Layers for the tile server
# ═══════════════════════════════════════════════════════════════

@router.get("/paths/{algorithm}", response_model=PathLayerResponse, responses=_ERRORS)
async def get_path_layer(algorithm: str):
    """Latest committed path for one algorithm plus its cache-busting version."""
    try:
        algo = Algorithm(algorithm.lower())
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown algorithm: {algorithm}")

    coordinator = events.coordinator
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Graph still loading, please wait a moment and retry")

    snap = coordinator.snapshot(algo)
    response = PathLayerResponse(algorithm=algo, version=snap.version)
    if snap.points is not None:
        response.start = list(snap.points.start)
        response.end = list(snap.points.end)
        response.source_node = snap.points.source
        response.target_node = snap.points.target
    if snap.result is not None:
        response.generation = snap.result.generation
        response.edge_count = snap.result.edge_count
        response.total_distance = _round(snap.result.total_cost)
        response.geojson = GeoJSONFeatureCollection(**snap.result.to_geojson())
    return response


@router.get("/network/segments", response_model=GeoJSONFeatureCollection)
async def get_network_segments():
    """Road network edges as GeoJSON."""
    graph_service, _ = _services()
    return GeoJSONFeatureCollection(
        features=[GeoJSONFeature(**f) for f in graph_service.get_segment_geometries()]
    )


@router.get("/network/summary", response_model=NetworkSummary)
async def get_network_summary():
    graph_service, _ = _services()
    return NetworkSummary(**graph_service.get_graph().summary())


@router.post("/network/rebuild", response_model=NetworkSummary, responses=_ERRORS)
async def rebuild_network():
    """Rebuild the graph from the road dataset; every stored path is invalidated."""
    _, coordinator = _services()
    graph = await coordinator.rebuild_graph()
    return NetworkSummary(**graph.summary())
