"""lineage-bench — row-level data lineage benchmarks on ClickHouse."""

__version__ = "0.1.0"

from lineage_bench.lineage import LineageEdge, LineageResolver, resolve_lineage

__all__ = ["LineageEdge", "LineageResolver", "resolve_lineage", "__version__"]
