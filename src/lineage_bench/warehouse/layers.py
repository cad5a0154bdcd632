"""Daily batch — builds every warehouse layer for one simulated day.

    ods_jira_issues → dwd_jira_issues → dwm_bugs ─┐
                                  └──────────────→ dws_projects
    ods_git_commits → dwd_git_commits ────────────┘

Each derived record gets a lineage edge pointing at the records it came from.
"""

from __future__ import annotations
import asyncio
import logging
import random
from datetime import date, datetime, timezone

from lineage_bench.connectors.base import Connector
from lineage_bench.core.config import BenchSettings
from lineage_bench.dag.graph import LayerGraph
from lineage_bench.dag.runner import BatchResult, LayerRunner
from lineage_bench.lineage.models import LineageEdge
from lineage_bench.warehouse import generators as gen
from lineage_bench.warehouse.schema import (
    DWD_GIT_COMMITS,
    DWD_JIRA_ISSUES,
    DWM_BUGS,
    DWS_PROJECTS,
    ODS_GIT_COMMITS,
    ODS_JIRA_ISSUES,
)
from lineage_bench.warehouse.store import LineageStore

logger = logging.getLogger("lineage_bench.warehouse.layers")

_DAY_FILTER = """
    toDate(issue_updated_at) = {day:Date}
    OR toDate(issue_created_at) = {day:Date}
    OR toDate(issue_resolution_date) = {day:Date}"""

ODS_JIRA_FOR_DAY = f"SELECT * FROM {ODS_JIRA_ISSUES} WHERE {_DAY_FILTER}"

ODS_GIT_FOR_DAY = f"SELECT * FROM {ODS_GIT_COMMITS} WHERE toDate(commit_at) = {{day:Date}}"

DWD_BUGS_FOR_DAY = f"""
SELECT * FROM {DWD_JIRA_ISSUES}
WHERE issue_type = 'bug' AND ({_DAY_FILTER})
"""

LATEST_COMMITS = f"""
WITH latest_commits AS (
    SELECT
        project_id, commit_id, commit_at, data_id,
        ROW_NUMBER() OVER (PARTITION BY commit_id ORDER BY data_created_at DESC) AS rn
    FROM {DWD_GIT_COMMITS}
    WHERE toDate(commit_at) >= addMonths({{day:Date}}, -3) AND toDate(commit_at) <= {{day:Date}}
)
SELECT project_id, data_id, toDate(commit_at) > addMonths({{day:Date}}, -1) AS in_1m
FROM latest_commits
WHERE rn = 1
"""

LATEST_ISSUES = f"""
WITH latest_issues AS (
    SELECT
        project_id, issue_created_at, data_id,
        ROW_NUMBER() OVER (PARTITION BY issue_id ORDER BY data_created_at DESC) AS rn
    FROM {DWD_JIRA_ISSUES}
    WHERE toDate(issue_created_at) >= addMonths({{day:Date}}, -3) AND toDate(issue_created_at) <= {{day:Date}}
)
SELECT project_id, data_id, toDate(issue_created_at) > addMonths({{day:Date}}, -1) AS in_1m
FROM latest_issues
WHERE rn = 1
"""

LATEST_BUGS = f"""
WITH latest_bugs AS (
    SELECT
        project_id, bug_created_at, data_id,
        toFloat64OrZero(`metrics.values`[indexOf(`metrics.keys`, 'bug_days')]) AS bug_days,
        ROW_NUMBER() OVER (PARTITION BY issue_id ORDER BY data_created_at DESC) AS rn
    FROM {DWM_BUGS}
    WHERE toDate(bug_created_at) >= addMonths({{day:Date}}, -3) AND toDate(bug_created_at) <= {{day:Date}}
)
SELECT project_id, data_id, bug_days, toDate(bug_created_at) > addMonths({{day:Date}}, -1) AS in_1m
FROM latest_bugs
WHERE rn = 1
"""


def build_layer_graph() -> LayerGraph:
    graph = LayerGraph()
    graph.add_dependency(ODS_JIRA_ISSUES, DWD_JIRA_ISSUES)
    graph.add_dependency(ODS_GIT_COMMITS, DWD_GIT_COMMITS)
    graph.add_dependency(DWD_JIRA_ISSUES, DWM_BUGS)
    graph.add_dependencies(DWS_PROJECTS, [DWD_GIT_COMMITS, DWD_JIRA_ISSUES, DWM_BUGS])
    return graph


class DailyBatch:
    """All layer steps for one simulated day."""

    def __init__(
        self,
        conn: Connector,
        day: date,
        settings: BenchSettings,
        rng: random.Random | None = None,
        store: LineageStore | None = None,
    ):
        self.conn = conn
        self.day = day
        self.settings = settings
        self.rng = rng or random.Random(settings.seed)
        self.store = store or LineageStore(conn)
        self.ingested_at = int(datetime.now(tz=timezone.utc).timestamp())
        self._steps = {
            ODS_JIRA_ISSUES: self.make_ods_jira_issues,
            ODS_GIT_COMMITS: self.make_ods_git_commits,
            DWD_JIRA_ISSUES: self.make_dwd_jira_issues,
            DWD_GIT_COMMITS: self.make_dwd_git_commits,
            DWM_BUGS: self.make_dwm_bugs,
            DWS_PROJECTS: self.make_dws_projects,
        }

    async def run(self, fail_fast: bool = True) -> BatchResult:
        runner = LayerRunner(
            build_layer_graph(),
            run_fn=self.run_step,
            max_parallel=self.settings.batch_concurrency,
            fail_fast=fail_fast,
        )
        result = await runner.run()
        logger.info(f"Batch {self.day}: {result.status} in {result.duration_ms}ms")
        return result

    async def run_step(self, name: str) -> dict:
        step = self._steps.get(name)
        if step is None:
            raise KeyError(f"Unknown step: {name}")
        return await step()

    def _edges(self, from_table: str, to_table: str, pairs, facets: list[str]) -> list[LineageEdge]:
        created_at = datetime.fromtimestamp(self.ingested_at, tz=timezone.utc)
        return [
            LineageEdge(
                from_table=from_table,
                from_ids=from_ids,
                to_table=to_table,
                to_id=to_id,
                to_facets=facets,
                created_at=created_at,
            )
            for from_ids, to_id in pairs
        ]

    # ─── ODS ───

    async def make_ods_jira_issues(self) -> dict:
        rows = gen.make_jira_issues(
            self.day, self.settings.daily_issue_count, self.rng, self.ingested_at,
            project_id_range=self.settings.project_id_range,
            issue_id_range=self.settings.issue_id_range,
        )
        loaded = await self.conn.load(rows, table=ODS_JIRA_ISSUES)
        return {"status": "success", "rows": loaded, "lineage_rows": 0}

    async def make_ods_git_commits(self) -> dict:
        rows = gen.make_git_commits(
            self.day, self.settings.daily_commit_count, self.rng, self.ingested_at,
            project_id_range=self.settings.project_id_range,
            issue_id_range=self.settings.issue_id_range,
        )
        loaded = await self.conn.load(rows, table=ODS_GIT_COMMITS)
        return {"status": "success", "rows": loaded, "lineage_rows": 0}

    # ─── DWD ───

    async def make_dwd_jira_issues(self) -> dict:
        records = await self.conn.extract(ODS_JIRA_FOR_DAY, params={"day": self.day})
        rows = [{**record, **gen.jira_metrics(self.rng)} for record in records]
        loaded = await self.conn.load(rows, table=DWD_JIRA_ISSUES)

        edges = self._edges(
            ODS_JIRA_ISSUES, DWD_JIRA_ISSUES,
            [([r["data_id"]], r["data_id"]) for r in rows],
            gen.JIRA_METRIC_KEYS,
        )
        lineage = await self.store.append(edges)
        return {"status": "success", "rows": loaded, "lineage_rows": lineage}

    async def make_dwd_git_commits(self) -> dict:
        records = await self.conn.extract(ODS_GIT_FOR_DAY, params={"day": self.day})
        rows = [{**record, **gen.git_metrics(self.rng)} for record in records]
        loaded = await self.conn.load(rows, table=DWD_GIT_COMMITS)

        edges = self._edges(
            ODS_GIT_COMMITS, DWD_GIT_COMMITS,
            [([r["data_id"]], r["data_id"]) for r in rows],
            gen.GIT_METRIC_KEYS,
        )
        lineage = await self.store.append(edges)
        return {"status": "success", "rows": loaded, "lineage_rows": lineage}

    # ─── DWM ───

    async def make_dwm_bugs(self) -> dict:
        records = await self.conn.extract(DWD_BUGS_FOR_DAY, params={"day": self.day})
        rows, pairs = [], []
        for record in records:
            total_days = gen.metric_value(record, "total_days")
            data_id = gen.random_uuid(self.rng)
            rows.append({
                "metrics_date": self.day.isoformat(),
                "project_id": record["project_id"],
                "issue_id": record["issue_id"],
                "bug_created_at": record["issue_created_at"],
                "bug_updated_at": record["issue_updated_at"],
                "bug_resolution_date": record.get("issue_resolution_date"),
                **gen.bug_metrics(total_days, self.rng),
                "data_id": data_id,
                "data_created_at": self.ingested_at,
            })
            pairs.append(([record["data_id"]], data_id))

        if not rows:
            return {"status": "success", "rows": 0, "lineage_rows": 0}

        loaded = await self.conn.load(rows, table=DWM_BUGS)
        lineage = await self.store.append(
            self._edges(DWD_JIRA_ISSUES, DWM_BUGS, pairs, gen.BUG_METRIC_KEYS)
        )
        return {"status": "success", "rows": loaded, "lineage_rows": lineage}

    # ─── DWS ───

    async def make_dws_projects(self) -> dict:
        params = {"day": self.day}
        commits, issues, bugs = await asyncio.gather(
            self.conn.extract(LATEST_COMMITS, params=params),
            self.conn.extract(LATEST_ISSUES, params=params),
            self.conn.extract(LATEST_BUGS, params=params),
        )

        rows, edges = [], []
        created_at = datetime.fromtimestamp(self.ingested_at, tz=timezone.utc)
        for project_id in range(*self.settings.project_id_range):
            agg = gen.aggregate_project(
                project_id, commits, issues, bugs,
                commit_table=DWD_GIT_COMMITS, issue_table=DWD_JIRA_ISSUES, bug_table=DWM_BUGS,
            )
            data_id = gen.random_uuid(self.rng)
            rows.append({
                "metrics_date": self.day.isoformat(),
                "project_id": project_id,
                **agg.metric_columns(),
                "data_id": data_id,
                "data_created_at": self.ingested_at,
            })
            edges.extend(
                LineageEdge(
                    from_table=from_table,
                    from_ids=from_ids,
                    to_table=DWS_PROJECTS,
                    to_id=data_id,
                    to_facets=facets,
                    created_at=created_at,
                )
                for from_table, from_ids, facets in agg.sources
            )

        loaded = await self.conn.load(rows, table=DWS_PROJECTS)
        lineage = await self.store.append(edges)
        return {"status": "success", "rows": loaded, "lineage_rows": lineage}
