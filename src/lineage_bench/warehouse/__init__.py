"""Layered benchmark warehouse: schema, synthetic data, daily batch, lineage store."""

from lineage_bench.warehouse.schema import TABLES, create_tables, drop_tables, truncate_tables
from lineage_bench.warehouse.store import LineageStore

__all__ = ["TABLES", "create_tables", "drop_tables", "truncate_tables", "LineageStore"]
