"""Benchmark chart rendering and serving."""

from lineage_bench.report.chart import chart_rows, render_chart

__all__ = ["chart_rows", "render_chart"]
