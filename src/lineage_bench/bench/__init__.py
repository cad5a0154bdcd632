"""Benchmark driver and result schemas."""

from lineage_bench.bench.results import BenchmarkResult, DayTiming, TableStat
from lineage_bench.bench.runner import BatchFailed, BenchmarkRunner

__all__ = ["BenchmarkResult", "DayTiming", "TableStat", "BatchFailed", "BenchmarkRunner"]
