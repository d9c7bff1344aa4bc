"""
RouteGraph: FastAPI Application Entry Point
Shortest-path service over a road network built from raw line geometries.

Run with:
    cd routegraph_backend
    uvicorn routegraph.main:app --reload --host 0.0.0.0 --port 3001
"""

import logging
import sys

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from routegraph.api.v1.routes import router as routing_router
from routegraph.core.config import settings
from routegraph.core.events import lifespan
from routegraph.core.exceptions import (
    GraphInconsistency,
    GraphNotReady,
    InvalidGeometry,
    InvalidInput,
    NoPathFound,
    RecomputeFailure,
    RouteGraphError,
)

# ── Logging ──
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s │ %(name)-28s │ %(levelname)-7s │ %(message)s",
    datefmt="%H:%M:%S",
    stream=sys.stdout,
)

logger = logging.getLogger("routegraph")

# ═══════════════════════════════════════════════════════════════
# FastAPI App
# ═══════════════════════════════════════════════════════════════

app = FastAPI(
    title="RouteGraph",
    description=(
        "Builds a routable graph from road line geometries and answers "
        "Dijkstra / A* shortest-path queries between arbitrary points."
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (allow map frontend) ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

# ── Register Routers ──
app.include_router(routing_router)


# ═══════════════════════════════════════════════════════════════
# Error mapping
# ═══════════════════════════════════════════════════════════════

_STATUS = {
    InvalidInput: 400,
    InvalidGeometry: 400,
    NoPathFound: 404,
    GraphNotReady: 503,
    GraphInconsistency: 500,
    RecomputeFailure: 500,
}


@app.exception_handler(RouteGraphError)
async def routegraph_error_handler(request: Request, exc: RouteGraphError):
    status = next((code for cls, code in _STATUS.items() if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {problems}"})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


# ═══════════════════════════════════════════════════════════════
# Root & Health Endpoints
# ═══════════════════════════════════════════════════════════════

@app.get("/", tags=["Root"])
async def root():
    return {
        "name": "RouteGraph",
        "version": "1.0.0",
        "description": "Road network shortest-path service (Dijkstra & A*)",
        "docs": "/docs",
        "endpoints": {
            "dijkstra_route": "/api/v1/update-route",
            "astar_route": "/api/v1/astar-route",
            "clear_dijkstra": "/api/v1/clear-shortest-path",
            "clear_astar": "/api/v1/clear-astar-path",
            "reset_all": "/api/v1/reset-all",
            "path_layer": "/api/v1/paths/{algorithm}",
            "road_segments": "/api/v1/network/segments",
            "network_summary": "/api/v1/network/summary",
            "network_rebuild": "/api/v1/network/rebuild",
        },
    }


@app.get("/health", tags=["Root"])
async def health():
    from routegraph.core import events

    ready = bool(events.graph_service and events.graph_service.is_ready())
    return {"status": "ok", "service": "routegraph", "graph_ready": ready}
