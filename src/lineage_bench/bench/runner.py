"""Benchmark runner — one daily batch per simulated day, timed and measured."""

from __future__ import annotations
import asyncio
import logging
import random
import time
from datetime import date, timedelta
from typing import Callable, Iterator

from lineage_bench.bench.results import BenchmarkResult, DayTiming, TableStat
from lineage_bench.connectors.base import Connector
from lineage_bench.core.config import BenchSettings
from lineage_bench.dag.runner import BatchResult
from lineage_bench.warehouse.layers import DailyBatch
from lineage_bench.warehouse.schema import DWS_PROJECTS, TABLES, truncate_tables
from lineage_bench.warehouse.store import LineageStore

logger = logging.getLogger("lineage_bench.bench")

TABLE_STATS = """
SELECT
    database,
    table,
    sum(bytes_on_disk) AS total_bytes,
    sum(rows) AS total_rows,
    count() AS part_count
FROM system.parts
WHERE active AND database = {database:String} AND table IN {tables:Array(String)}
GROUP BY database, table
ORDER BY table
"""

DWS_SAMPLE = f"""
SELECT data_id FROM {DWS_PROJECTS}
WHERE metrics_date = {{day:Date}}
ORDER BY project_id
LIMIT {{limit:UInt32}}
"""


class BatchFailed(Exception):
    """Raised when a daily batch does not complete."""

    def __init__(self, day: date, result: BatchResult):
        self.day = day
        self.result = result
        detail = "; ".join(f"{name}: {err}" for name, err in result.errors().items())
        super().__init__(f"Batch for {day} {result.status}: {detail or 'steps skipped'}")


def iter_days(start: date, end: date) -> Iterator[date]:
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


class BenchmarkRunner:
    """Runs the simulation from ``start_date`` to ``end_date`` inclusive."""

    def __init__(
        self,
        conn: Connector,
        settings: BenchSettings,
        on_day: Callable[[DayTiming], None] | None = None,
    ):
        self.conn = conn
        self.settings = settings
        self.store = LineageStore(conn)
        self.rng = random.Random(settings.seed)
        self.on_day = on_day

    async def run(self) -> BenchmarkResult:
        s = self.settings
        if s.end_date < s.start_date:
            raise ValueError(f"end_date {s.end_date} is before start_date {s.start_date}")

        result = BenchmarkResult(args=s.public_args())

        if s.clean_before:
            await truncate_tables(self.conn)

        for day in iter_days(s.start_date, s.end_date):
            timing = await self.run_day(day)
            result.timings.append(timing)
            if self.on_day:
                self.on_day(timing)

        logger.info(f"Benchmark finished: {len(result.timings)} days")
        return result

    async def run_day(self, day: date) -> DayTiming:
        batch = DailyBatch(self.conn, day, self.settings, rng=self.rng, store=self.store)

        started = time.perf_counter()
        batch_result = await batch.run(fail_fast=True)
        duration_ms = int((time.perf_counter() - started) * 1000)

        if not batch_result.ok:
            raise BatchFailed(day, batch_result)

        timing = DayTiming(
            date=day,
            duration_ms=duration_ms,
            table_stats=await self.table_stats(),
            steps=batch_result.results,
        )

        if self.settings.lineage_sample:
            timing.lineage_ms, timing.lineage_edges = await self.sample_lineage(day)

        logger.info(f"{day}: batch {duration_ms}ms")
        return timing

    async def table_stats(self) -> list[TableStat]:
        rows = await self.conn.extract(
            TABLE_STATS,
            params={"database": self.settings.clickhouse_database, "tables": TABLES},
        )
        return [TableStat.model_validate(row) for row in rows]

    async def sample_lineage(self, day: date) -> tuple[int, int]:
        """Resolve the lineage of up to ``lineage_sample`` DWS records of ``day``."""
        rows = await self.conn.extract(
            DWS_SAMPLE, params={"day": day, "limit": self.settings.lineage_sample}
        )
        options = self.settings.resolver_kwargs()

        started = time.perf_counter()
        resolved = await asyncio.gather(*[
            self.store.resolve(DWS_PROJECTS, row["data_id"], **options) for row in rows
        ])
        lineage_ms = int((time.perf_counter() - started) * 1000)

        edges = sum(len(r) for r in resolved)
        logger.info(f"{day}: lineage of {len(rows)} records, {edges} edges in {lineage_ms}ms")
        return lineage_ms, edges
