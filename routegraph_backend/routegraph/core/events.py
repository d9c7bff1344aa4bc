"""
RouteGraph: FastAPI Lifespan Events
Manages startup (graph load, result reset) and shutdown.
Uses the modern FastAPI lifespan context manager pattern.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from routegraph.core.config import settings
from routegraph.services.graph_builder import GraphBuilderService
from routegraph.services.path_coordinator import PathCoordinator

logger = logging.getLogger("routegraph.events")

# ── Global references for DI ──
graph_service: GraphBuilderService | None = None
coordinator: PathCoordinator | None = None
_startup_task: asyncio.Task | None = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.
    The graph is built in a background task so the server starts accepting
    requests immediately; routing endpoints answer 503 until it is ready.
    """
    global graph_service, coordinator, _startup_task

    logger.info("=" * 60)
    logger.info("  RouteGraph: Starting Up")
    logger.info("=" * 60)

    graph_service = GraphBuilderService()
    coordinator = PathCoordinator(graph_service, cache_size=settings.result_cache_size)
    _startup_task = asyncio.create_task(_initialize_services(), name="startup-init")

    logger.info("Server accepting requests. Road graph loading in background...")

    yield  # ── App is running ──

    logger.info("Shutting down RouteGraph...")
    if _startup_task and not _startup_task.done():
        _startup_task.cancel()
        try:
            await _startup_task
        except asyncio.CancelledError:
            pass
    logger.info("Shutdown complete.")


async def _initialize_services() -> None:
    """Background task: build/load the road graph, then reset stored paths."""
    try:
        await graph_service.initialize()
        await coordinator.reset_all()
        logger.info("All systems online. Serving requests.")
    except Exception as e:
        logger.error(f"Background initialization failed: {e}", exc_info=True)
