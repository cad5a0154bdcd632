"""Layer runner — runs one daily batch wave by wave."""

from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Awaitable, Callable

from lineage_bench.dag.graph import LayerGraph

logger = logging.getLogger("lineage_bench.dag")

StepFn = Callable[[str], Awaitable[dict]]


@dataclass
class BatchResult:
    """Outcome of one batch: per-step results plus what failed or never ran."""
    status: str = "pending"  # pending | success | partial | failed
    duration_ms: int | None = None
    results: dict[str, dict] = field(default_factory=dict)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    execution_order: list[list[str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def errors(self) -> dict[str, str]:
        return {name: self.results[name].get("error", "unknown error") for name in self.failed}

    def to_dict(self) -> dict:
        return asdict(self)


class LayerRunner:
    """Runs the steps of a layer graph; steps of one wave run concurrently."""

    def __init__(
        self,
        graph: LayerGraph,
        run_fn: StepFn,
        max_parallel: int = 4,
        fail_fast: bool = False,
    ):
        """
        Args:
            graph: Step dependency graph
            run_fn: Async ``name -> dict`` running one step; a ``status`` of
                "failed" in the returned dict marks the step failed
            max_parallel: Max steps in flight within a wave
            fail_fast: Skip every later wave once a step fails
        """
        self.graph = graph
        self.run_fn = run_fn
        self.max_parallel = max_parallel
        self.fail_fast = fail_fast

    async def _step(self, name: str, slots: asyncio.Semaphore) -> dict:
        async with slots:
            started = time.perf_counter()
            try:
                logger.debug(f"Running step: {name}")
                outcome = {"status": "success", **await self.run_fn(name)}
            except Exception as e:
                logger.error(f"Step {name} failed: {type(e).__name__}: {e}")
                outcome = {"status": "failed", "error": f"{type(e).__name__}: {e}"}
            outcome["duration_ms"] = int((time.perf_counter() - started) * 1000)
            return outcome

    async def run(self) -> BatchResult:
        waves = self.graph.parallel_groups()
        result = BatchResult(execution_order=waves)
        slots = asyncio.Semaphore(self.max_parallel)
        started = time.perf_counter()

        for wave in waves:
            if self.fail_fast and result.failed:
                result.skipped.extend(wave)
                continue

            blocked = {name for name in wave if self.graph.get_upstream(name) & set(result.failed)}
            for name in sorted(blocked):
                logger.info(f"Skipping {name}: an upstream step failed")
            result.skipped.extend(sorted(blocked))

            runnable = [name for name in wave if name not in blocked]
            outcomes = await asyncio.gather(*[self._step(name, slots) for name in runnable])
            for name, outcome in zip(runnable, outcomes):
                result.results[name] = outcome
                if outcome["status"] == "failed":
                    result.failed.append(name)

        result.duration_ms = int((time.perf_counter() - started) * 1000)
        if not result.failed and not result.skipped:
            result.status = "success"
        elif len(result.failed) == len(result.results):
            result.status = "failed"
        else:
            result.status = "partial"
        return result
