"""
RouteGraph: Result Materialization Coordinator
Serializes query → search → commit cycles so a PathResult is never partially
visible. Each algorithm owns one slot (query points + latest result +
version token) guarded by its own lock; readers get the last committed
snapshot without waiting.

submit_query:
  1. begin a transaction on the algorithm's slot
  2. clear the previously registered query points
  3. snap and register the new start/end points
  4. run the search (worker thread)
  5. stage the result and commit; any failure rolls the slot back untouched

Concurrent callers on the same algorithm share the slot: the later commit
wins. Repeated queries are served from an LRU memo cache keyed by
(start, end, algorithm, graph generation).
"""

import asyncio
import logging
from collections import OrderedDict
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from routegraph.core.exceptions import (
    GraphNotReady,
    InvalidGeometry,
    InvalidInput,
    NoPathFound,
    RecomputeFailure,
)
from routegraph.engine.geodesy import Coordinate, ensure_finite
from routegraph.engine.router import PathResult, ShortestPathEngine
from routegraph.engine.spatial_index import NearestNodeResolver, QueryContext
from routegraph.models.schemas import Algorithm
from routegraph.services.graph_builder import GraphBuilderService

logger = logging.getLogger("routegraph.coordinator")

_PASSTHROUGH = (InvalidInput, NoPathFound, GraphNotReady)

_LABELS = {
    Algorithm.DIJKSTRA: "shortest path",
    Algorithm.ASTAR: "A* shortest path",
}


@dataclass(frozen=True)
class QueryPoints:
    start: Coordinate
    end: Coordinate
    source: int
    target: int


@dataclass(frozen=True)
class SlotSnapshot:
    """Committed state of one algorithm's slot."""
    points: Optional[QueryPoints] = None
    result: Optional[PathResult] = None
    version: int = 0


class PathCache:
    """Small LRU memo of computed paths."""

    def __init__(self, max_size: int = 128) -> None:
        self.max_size = max_size
        self._entries: OrderedDict[tuple, PathResult] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: tuple) -> Optional[PathResult]:
        result = self._entries.get(key)
        if result is None:
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return result

    def put(self, key: tuple, result: PathResult) -> None:
        if self.max_size <= 0:
            return
        self._entries[key] = result
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict:
        return {"size": len(self._entries), "max_size": self.max_size, "hits": self.hits, "misses": self.misses}


class _Transaction:
    """Staged changes against a set of slot snapshots; applied only on commit."""

    def __init__(self, base: dict[Algorithm, SlotSnapshot]) -> None:
        self._base = base
        self._points: dict[Algorithm, Optional[QueryPoints]] = {}
        self._results: dict[Algorithm, Optional[PathResult]] = {}

    def clear_points(self, algorithm: Algorithm) -> None:
        self._points[algorithm] = None

    def register_points(self, algorithm: Algorithm, points: QueryPoints) -> None:
        self._points[algorithm] = points

    def stage_result(self, algorithm: Algorithm, result: Optional[PathResult]) -> None:
        self._results[algorithm] = result

    def staged(self) -> dict[Algorithm, SlotSnapshot]:
        out: dict[Algorithm, SlotSnapshot] = {}
        for algorithm, base in self._base.items():
            if algorithm not in self._points and algorithm not in self._results:
                continue
            out[algorithm] = SlotSnapshot(
                points=self._points.get(algorithm, base.points),
                result=self._results.get(algorithm, base.result),
                version=base.version + 1,
            )
        return out


class PathCoordinator:
    """Owns the latest PathResult per algorithm and the transactions that replace it."""

    def __init__(self, graph_service: GraphBuilderService, cache_size: int = 128) -> None:
        self._graph_service = graph_service
        self._locks = {a: asyncio.Lock() for a in Algorithm}
        self._committed: dict[Algorithm, SlotSnapshot] = {a: SlotSnapshot() for a in Algorithm}
        self.cache = PathCache(cache_size)

    # ── Reads (never block) ────────────────────────────────

    def snapshot(self, algorithm: Algorithm) -> SlotSnapshot:
        return self._committed[algorithm]

    def get_result(self, algorithm: Algorithm) -> Optional[PathResult]:
        return self._committed[algorithm].result

    def version(self, algorithm: Algorithm) -> int:
        return self._committed[algorithm].version

    # ── Transactions ───────────────────────────────────────

    @asynccontextmanager
    async def _transaction(self, *algorithms: Algorithm) -> AsyncIterator[_Transaction]:
        ordered = sorted(set(algorithms), key=lambda a: a.value)
        async with AsyncExitStack() as stack:
            for algorithm in ordered:
                await stack.enter_async_context(self._locks[algorithm])
            tx = _Transaction({a: self._committed[a] for a in ordered})
            try:
                yield tx
            except BaseException:
                logger.warning(f"Rolled back transaction on {[a.value for a in ordered]}")
                raise
            for algorithm, snap in tx.staged().items():
                self._committed[algorithm] = snap

    # ── Operations ─────────────────────────────────────────

    async def submit_query(self, start, end, algorithm: Algorithm) -> PathResult:
        """Compute and materialize the path between two arbitrary points."""
        if start is None or end is None:
            raise InvalidInput("Start and end points must be provided as [longitude, latitude]")
        try:
            ctx = QueryContext(
                start=ensure_finite(start, "start point"),
                end=ensure_finite(end, "end point"),
                algorithm=algorithm,
            )
        except InvalidGeometry as e:
            raise InvalidInput(str(e)) from e

        try:
            async with self._transaction(algorithm) as tx:
                # rebuild swaps these while holding every slot lock
                resolver = self._graph_service.get_resolver()
                engine = self._graph_service.get_engine()
                tx.clear_points(algorithm)
                self._register_points(tx, ctx, resolver)
                result = await self._compute(ctx, engine)
                tx.stage_result(algorithm, result)
        except _PASSTHROUGH:
            raise
        except Exception as e:
            logger.error(f"Transaction error ({algorithm.value}): {e}", exc_info=True)
            raise RecomputeFailure(
                "Failed to update route" if algorithm == Algorithm.DIJKSTRA else "Failed to update A* route"
            ) from e

        logger.info(
            f"{algorithm.value} route committed (v{self.version(algorithm)}): "
            f"{result.edge_count} edges, {result.total_cost:.2f} km"
        )
        return result

    async def clear(self, algorithm: Algorithm) -> int:
        """Drop the stored result and query points for one algorithm. Returns the new version."""
        try:
            async with self._transaction(algorithm) as tx:
                tx.clear_points(algorithm)
                tx.stage_result(algorithm, None)
        except Exception as e:
            logger.error(f"Transaction error clearing {algorithm.value}: {e}", exc_info=True)
            raise RecomputeFailure(f"Failed to clear {_LABELS[algorithm]} data") from e
        return self.version(algorithm)

    async def reset_all(self) -> None:
        """Clear both algorithms' state in one transaction."""
        try:
            async with self._transaction(*Algorithm) as tx:
                self._drop_all(tx)
        except Exception as e:
            logger.error(f"Error clearing points or results: {e}", exc_info=True)
            raise RecomputeFailure("Failed to reset all.") from e
        logger.info("Query points cleared and path results reset.")

    async def rebuild_graph(self):
        """Rebuild the road graph with every slot locked; all cached results are invalidated."""
        try:
            async with self._transaction(*Algorithm) as tx:
                graph = await self._graph_service.rebuild()
                self._drop_all(tx)
                self.cache.clear()
        except Exception as e:
            logger.error(f"Graph rebuild failed: {e}", exc_info=True)
            raise RecomputeFailure("Failed to rebuild road graph") from e
        return graph

    # ── Steps ──────────────────────────────────────────────

    @staticmethod
    def _drop_all(tx: _Transaction) -> None:
        for algorithm in Algorithm:
            tx.clear_points(algorithm)
            tx.stage_result(algorithm, None)

    def _register_points(self, tx: _Transaction, ctx: QueryContext, resolver: NearestNodeResolver) -> None:
        resolver.resolve(ctx)
        tx.register_points(
            ctx.algorithm,
            QueryPoints(start=ctx.start, end=ctx.end, source=ctx.source, target=ctx.target),
        )

    async def _compute(self, ctx: QueryContext, engine: ShortestPathEngine) -> PathResult:
        key = ctx.cache_key()
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Path cache hit for {key}")
            return cached
        result = await asyncio.to_thread(engine.shortest_path, ctx.source, ctx.target, ctx.algorithm)
        self.cache.put(key, result)
        return result
