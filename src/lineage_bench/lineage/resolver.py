"""Lineage resolver — walks lineage edges back to every ancestor record.

Starting from a root edge, the resolver repeatedly asks the store "which
edges produced these records?" until no further ancestors are found:

    resolver = LineageResolver(store.fetch_children, max_concurrency=8)
    edges = await resolver.resolve(root)

The walk is breadth-first. Every ancestor set found at one level is looked
up concurrently (bounded by ``max_concurrency``), and each ancestor set is
expanded at most once per call so cycles and diamonds terminate.
"""

from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Sequence

from pydantic import ValidationError

from lineage_bench.lineage.errors import InvalidInput, LookupFailure, ResolutionTimeout
from lineage_bench.lineage.models import LineageEdge

logger = logging.getLogger("lineage_bench.lineage")

FetchChildren = Callable[[str, frozenset[str]], Awaitable[Sequence[Any]]]

ON_ERROR_MODES = ("abort", "skip")
KEY_MODES = ("id_set", "id")


@dataclass
class LineageTrace:
    """Outcome of one resolution call."""
    root: LineageEdge
    edges: list[LineageEdge] = field(default_factory=list)
    skipped: list[LookupFailure] = field(default_factory=list)
    visited: set[tuple[str, str]] = field(default_factory=set)
    lookups: int = 0
    duration_ms: int | None = None

    @property
    def complete(self) -> bool:
        return not self.skipped

    def to_dict(self) -> dict:
        return {
            "root": self.root.model_dump(mode="json"),
            "edges": [e.model_dump(mode="json") for e in self.edges],
            "skipped": [{"table": f.table, "ids": list(f.ids), "error": str(f.cause)} for f in self.skipped],
            "lookups": self.lookups,
            "duration_ms": self.duration_ms,
        }


class LineageResolver:
    """Resolves the full ancestry of a lineage edge."""

    def __init__(
        self,
        fetch_children: FetchChildren,
        max_concurrency: int = 8,
        timeout: float | None = None,
        on_error: str = "abort",
        key_mode: str = "id_set",
    ):
        """
        Args:
            fetch_children: Async ``(table, ids) -> edges`` returning every edge
                whose ``to_table`` is ``table`` and ``to_id`` is one of ``ids``
            max_concurrency: Max lookups in flight at once
            timeout: Deadline in seconds for a whole resolution, None for no limit
            on_error: "abort" fails the call on the first lookup failure,
                "skip" drops the failing branch and records it on the trace
            key_mode: "id_set" expands each (table, id set) once, "id" expands
                each (table, id) once and only looks up ids not seen before
        """
        if on_error not in ON_ERROR_MODES:
            raise ValueError(f"on_error must be one of {ON_ERROR_MODES}, got {on_error!r}")
        if key_mode not in KEY_MODES:
            raise ValueError(f"key_mode must be one of {KEY_MODES}, got {key_mode!r}")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.fetch_children = fetch_children
        self.max_concurrency = max_concurrency
        self.timeout = timeout
        self.on_error = on_error
        self.key_mode = key_mode

    async def resolve(self, root: LineageEdge | dict) -> list[LineageEdge]:
        """Return the root edge followed by every distinct ancestor edge."""
        trace = await self.trace(root)
        return trace.edges

    async def trace(self, root: LineageEdge | dict) -> LineageTrace:
        """Resolve ``root`` and return the edges along with traversal stats."""
        root = self._validate_root(root)
        trace = LineageTrace(root=root, edges=[root])
        started = time.perf_counter()

        try:
            if self.timeout is None:
                await self._walk(trace)
            else:
                await asyncio.wait_for(self._walk(trace), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ResolutionTimeout(self.timeout, trace.lookups) from None

        trace.duration_ms = int((time.perf_counter() - started) * 1000)
        logger.debug(
            f"Resolved {root.to_table}/{root.to_id}: {len(trace.edges)} edges, "
            f"{trace.lookups} lookups, {len(trace.skipped)} skipped"
        )
        return trace

    @staticmethod
    def _validate_root(root: LineageEdge | dict) -> LineageEdge:
        if not isinstance(root, LineageEdge):
            try:
                root = LineageEdge.model_validate(root)
            except ValidationError as e:
                raise InvalidInput(f"Malformed root edge: {e}", edge=root) from e
        if not root.to_id:
            raise InvalidInput("Root edge has an empty to_id", edge=root)
        return root

    async def _walk(self, trace: LineageTrace) -> None:
        semaphore = asyncio.Semaphore(self.max_concurrency)
        emitted = {trace.root.identity}
        frontier = [trace.root]

        while frontier:
            requests = self._plan(frontier, trace.visited)
            if not requests:
                break
            trace.lookups += len(requests)

            results = await self._fan_out(requests, semaphore, trace)

            frontier = []
            for children in results:
                for child in children:
                    if child.identity in emitted:
                        continue
                    emitted.add(child.identity)
                    trace.edges.append(child)
                    frontier.append(child)

    def _plan(
        self, frontier: list[LineageEdge], visited: set[tuple[str, str]]
    ) -> list[tuple[str, frozenset[str]]]:
        """Pick the lookups for the next level, marking their keys visited."""
        requests: list[tuple[str, frozenset[str]]] = []

        for edge in frontier:
            if self.key_mode == "id":
                fresh = frozenset(
                    i for i in edge.from_ids if (edge.from_table, i) not in visited
                )
                visited.update((edge.from_table, i) for i in fresh)
                if fresh:
                    requests.append((edge.from_table, fresh))
                continue

            key = edge.visit_key
            if key in visited:
                continue
            visited.add(key)
            if edge.from_ids:
                requests.append((edge.from_table, frozenset(edge.from_ids)))

        return requests

    async def _fan_out(
        self,
        requests: list[tuple[str, frozenset[str]]],
        semaphore: asyncio.Semaphore,
        trace: LineageTrace,
    ) -> list[list[LineageEdge]]:
        tasks = [
            asyncio.ensure_future(self._lookup(table, ids, semaphore))
            for table, ids in requests
        ]

        if self.on_error == "abort":
            try:
                return list(await asyncio.gather(*tasks))
            except LookupFailure:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise

        results = []
        for outcome in await asyncio.gather(*tasks, return_exceptions=True):
            if isinstance(outcome, LookupFailure):
                logger.warning(f"Skipping lineage branch: {outcome}")
                trace.skipped.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(outcome)
        return results

    async def _lookup(
        self, table: str, ids: frozenset[str], semaphore: asyncio.Semaphore
    ) -> list[LineageEdge]:
        async with semaphore:
            try:
                rows = await self.fetch_children(table, ids)
            except LookupFailure:
                raise
            except Exception as e:
                raise LookupFailure(table, ids, e) from e
        return self._coerce(table, ids, rows)

    @staticmethod
    def _coerce(table: str, ids: frozenset[str], rows: Iterable[Any] | None) -> list[LineageEdge]:
        """Validate lookup output: edges (or edge rows) targeting ``table``/``ids``."""
        if rows is None:
            raise LookupFailure(table, ids, "lookup returned None")

        edges = []
        for row in rows:
            if isinstance(row, dict):
                try:
                    row = LineageEdge.model_validate(row)
                except ValidationError as e:
                    raise LookupFailure(table, ids, f"malformed edge row: {e}") from e
            if not isinstance(row, LineageEdge):
                raise LookupFailure(table, ids, f"unexpected {type(row).__name__} in lookup result")
            if row.to_table != table or row.to_id not in ids:
                raise LookupFailure(
                    table, ids, f"edge targets {row.to_table}/{row.to_id}, outside the requested set"
                )
            edges.append(row)
        return edges


async def resolve_lineage(
    root: LineageEdge | dict, fetch_children: FetchChildren, **options
) -> list[LineageEdge]:
    """One-shot helper: ``LineageResolver(fetch_children, **options).resolve(root)``."""
    return await LineageResolver(fetch_children, **options).resolve(root)
