"""Tests for the benchmark chart page and server."""

from datetime import date

import pytest
from httpx import ASGITransport, AsyncClient

from lineage_bench.bench.results import BenchmarkResult, DayTiming, TableStat
from lineage_bench.report.app import create_app
from lineage_bench.report.chart import chart_rows, render_chart


def _result(args=None) -> BenchmarkResult:
    def stat(table, rows):
        return TableStat(database="default", table=table, total_bytes=rows * 10, total_rows=rows, part_count=1)

    return BenchmarkResult(
        args=args or {"daily_issue_count": 10},
        timings=[
            DayTiming(date=date(2024, 1, 1), duration_ms=120,
                      table_stats=[stat("data_lineage", 50), stat("ods_git_commits", 10)]),
            DayTiming(date=date(2024, 1, 2), duration_ms=140, lineage_ms=9, lineage_edges=30,
                      table_stats=[stat("data_lineage", 100), stat("ods_git_commits", 20)]),
        ],
    )


class TestChart:
    def test_chart_rows(self):
        rows = chart_rows(_result())
        assert rows[0] == {
            "date": "2024-01-01",
            "duration_ms": 120,
            "data_lineage_bytes": 500,
            "data_lineage_rows": 50,
            "data_lineage_part_count": 1,
            "ods_git_commits_bytes": 100,
            "ods_git_commits_rows": 10,
            "ods_git_commits_part_count": 1,
        }
        assert rows[1]["lineage_ms"] == 9

    def test_render_embeds_payload(self):
        html = render_chart(_result())
        assert "__PAYLOAD__" not in html
        assert '"data_lineage_rows": 100' in html
        assert "chart.js" in html

    def test_render_escapes_closing_tags(self):
        html = render_chart(_result(args={"note": "</script><script>alert(1)"}))
        assert "</script><script>alert(1)" not in html
        assert html.count("</script>") == 2

    def test_render_empty_result(self):
        html = render_chart(BenchmarkResult())
        assert '"rows": []' in html


class TestReportApp:
    @pytest.mark.asyncio
    async def test_serves_chart_and_results(self, tmp_path):
        path = _result().save(tmp_path / "results.json")
        transport = ASGITransport(app=create_app(path))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            page = await client.get("/")
            results = await client.get("/results")
            health = await client.get("/health")

        assert page.status_code == 200
        assert "text/html" in page.headers["content-type"]
        assert "Lineage Benchmark" in page.text
        assert results.json()["timings"][1]["lineage_edges"] == 30
        assert health.json()["status"] == "ok"

    @pytest.mark.asyncio
    async def test_missing_results_file(self, tmp_path):
        transport = ASGITransport(app=create_app(tmp_path / "missing.json"))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.get("/")
        assert resp.status_code == 404
