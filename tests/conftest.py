"""Shared test fixtures for lineage-bench tests."""

import asyncio
import os
from collections import defaultdict

import pytest

from lineage_bench.connectors.base import Connector
from lineage_bench.core.config import BenchSettings
from lineage_bench.lineage.models import LineageEdge
from lineage_bench.warehouse.generators import metric_value


def make_edge(from_table, from_ids, to_table, to_id, facets=("metric",)) -> LineageEdge:
    return LineageEdge(
        from_table=from_table,
        from_ids=list(from_ids),
        to_table=to_table,
        to_id=to_id,
        to_facets=list(facets),
        created_at=1704067200,
    )


class EdgeGraph:
    """In-memory edge store exposing the resolver's lookup capability."""

    def __init__(self, edges=(), fail_on=(), delay: float = 0.0):
        self.edges = list(edges)
        self.fail_on = set(fail_on)
        self.delay = delay
        self.calls: list[tuple[str, frozenset]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_children(self, table, ids):
        self.calls.append((table, frozenset(ids)))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if table in self.fail_on:
                raise ConnectionError(f"store unavailable: {table}")
            return [e for e in self.edges if e.to_table == table and e.to_id in ids]
        finally:
            self.in_flight -= 1

    def calls_for(self, table):
        return [ids for t, ids in self.calls if t == table]


class FakeClickHouse(Connector):
    """Connector double: loads land in memory, queries are answered by
    the first registered marker found in the query text."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = defaultdict(list)
        self.queries: list[tuple[str, dict | None]] = []
        self.statements: list[str] = []
        self.responses: dict[str, object] = {}
        self.connected = False

    async def connect(self) -> None:
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    async def extract(self, query, params=None, **kwargs):
        self.queries.append((query, params))
        for marker, response in self.responses.items():
            if marker in query:
                return response(params or {}) if callable(response) else list(response)
        return []

    async def load(self, data, table, **kwargs):
        self.tables[table].extend(data)
        return len(data)

    async def execute(self, query, params=None):
        self.statements.append(query)
        return ""


def wire_warehouse(fake: FakeClickHouse) -> FakeClickHouse:
    """Answer the batch, stats and lineage queries from the fake's tables."""
    t = fake.tables

    def window(table, extra=None):
        def rows(_params):
            out = []
            for r in t[table]:
                row = {"project_id": r["project_id"], "data_id": r["data_id"], "in_1m": 1}
                if extra:
                    row.update(extra(r))
                out.append(row)
            return out
        return rows

    def lineage(params):
        return [
            r for r in t["data_lineage"]
            if r["to_table"] == params["table"] and r["to_id"] in params["ids"]
        ]

    def stats(params):
        return [
            {"database": "default", "table": name, "total_bytes": str(len(t[name]) * 100),
             "total_rows": str(len(t[name])), "part_count": "1"}
            for name in sorted(params["tables"]) if t[name]
        ]

    fake.responses.update({
        "latest_commits": window("dwd_git_commits"),
        "latest_issues": window("dwd_jira_issues"),
        "latest_bugs": window("dwm_bugs", lambda r: {"bug_days": metric_value(r, "bug_days")}),
        "system.parts": stats,
        "FROM data_lineage": lineage,
        "FROM dws_projects": lambda p: [{"data_id": r["data_id"]} for r in t["dws_projects"]][: p.get("limit")],
        "FROM ods_jira_issues": lambda p: list(t["ods_jira_issues"]),
        "FROM ods_git_commits": lambda p: list(t["ods_git_commits"]),
        "FROM dwd_jira_issues": lambda p: [r for r in t["dwd_jira_issues"] if r["issue_type"] == "bug"],
    })
    return fake


@pytest.fixture
def edge_graph():
    return EdgeGraph


@pytest.fixture
def edge():
    return make_edge


@pytest.fixture
def fake_ch() -> FakeClickHouse:
    return wire_warehouse(FakeClickHouse())


@pytest.fixture
def isolated_env(tmp_path, monkeypatch):
    """Run with no lbench.toml/.env and no LBENCH_* variables from the host."""
    for key in list(os.environ):
        if key.startswith("LBENCH_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("LBENCH_HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def settings(isolated_env) -> BenchSettings:
    return BenchSettings(
        start_date="2024-01-01",
        end_date="2024-01-01",
        daily_issue_count=12,
        daily_commit_count=8,
        seed=7,
    )
