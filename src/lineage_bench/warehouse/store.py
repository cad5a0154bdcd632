"""Lineage store — reads and appends edges in the ``data_lineage`` table."""

from __future__ import annotations
import logging
from typing import Iterable

from pydantic import ValidationError

from lineage_bench.connectors.base import Connector
from lineage_bench.lineage.errors import LookupFailure
from lineage_bench.lineage.models import LineageEdge
from lineage_bench.lineage.resolver import LineageResolver
from lineage_bench.warehouse.schema import DATA_LINEAGE

logger = logging.getLogger("lineage_bench.warehouse.store")


def _with_unix_created_at(row: dict) -> dict:
    if "created_unix" not in row:
        return row
    row = dict(row)
    row["created_at"] = row.pop("created_unix")
    return row


class LineageStore:
    """Edge log backed by a ClickHouse table. Edges are append-only."""

    def __init__(self, conn: Connector, table: str = DATA_LINEAGE):
        self.conn = conn
        self.table = table

    async def fetch_children(self, table: str, ids: Iterable[str]) -> list[LineageEdge]:
        """Edges that produced the records ``ids`` of ``table``."""
        ids = sorted(set(ids))
        if not ids:
            return []

        query = f"""
            SELECT from_table, from_ids, to_table, to_id, to_facets,
                   toUnixTimestamp(created_at) AS created_unix
            FROM {self.table}
            WHERE to_table = {{table:String}}
              AND to_id IN {{ids:Array(String)}}
        """
        try:
            rows = await self.conn.extract(query, params={"table": table, "ids": ids})
        except Exception as e:
            raise LookupFailure(table, ids, e) from e

        try:
            return [LineageEdge.model_validate(_with_unix_created_at(row)) for row in rows]
        except ValidationError as e:
            raise LookupFailure(table, ids, f"malformed edge row: {e}") from e

    async def edges_for(self, table: str, record_id: str) -> list[LineageEdge]:
        """Root edges of one record — where its facets came from."""
        return await self.fetch_children(table, [record_id])

    async def append(self, edges: Iterable[LineageEdge]) -> int:
        rows = [edge.to_row() for edge in edges]
        loaded = await self.conn.load(rows, table=self.table)
        logger.debug(f"Appended {loaded} lineage edges")
        return loaded

    def resolver(self, **options) -> LineageResolver:
        """A resolver that looks edges up in this store."""
        return LineageResolver(self.fetch_children, **options)

    async def resolve(self, table: str, record_id: str, **options) -> list[LineageEdge]:
        """Full lineage of one record: every root edge plus all their ancestors."""
        resolver = self.resolver(**options)
        edges: list[LineageEdge] = []
        seen = set()
        for root in await self.edges_for(table, record_id):
            for edge in await resolver.resolve(root):
                if edge.identity not in seen:
                    seen.add(edge.identity)
                    edges.append(edge)
        return edges
