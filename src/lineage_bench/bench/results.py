"""Pydantic schemas for benchmark results."""

from __future__ import annotations
from datetime import date
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


class TableStat(BaseModel):
    """Size of one table after a batch (summed over its active parts)."""
    database: str
    table: str
    # ClickHouse quotes 64-bit integers in JSON output
    total_bytes: int
    total_rows: int
    part_count: int


class DayTiming(BaseModel):
    date: date
    duration_ms: int
    table_stats: list[TableStat] = Field(default_factory=list)
    steps: dict[str, dict] = Field(default_factory=dict)
    lineage_ms: int | None = None
    lineage_edges: int | None = None


class BenchmarkResult(BaseModel):
    args: dict[str, Any] = Field(default_factory=dict)
    timings: list[DayTiming] = Field(default_factory=list)

    @property
    def tables(self) -> list[str]:
        """Tables in the order of the first timing's stats."""
        if not self.timings:
            return []
        return [s.table for s in self.timings[0].table_stats]

    def save(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2))
        return path

    @classmethod
    def load(cls, path: str | Path) -> "BenchmarkResult":
        return cls.model_validate_json(Path(path).read_text())
