"""Daily batch dependency resolution and execution."""

from lineage_bench.dag.graph import CycleError, LayerGraph
from lineage_bench.dag.runner import BatchResult, LayerRunner

__all__ = ["CycleError", "LayerGraph", "BatchResult", "LayerRunner"]
