"""Lineage edge model — one row of the ``data_lineage`` table."""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class LineageEdge(BaseModel):
    """Asserts that ``to_facets`` of ``to_table``/``to_id`` were derived from
    the records ``from_ids`` of ``from_table``.

    An edge with no ``from_ids`` is a terminal edge: the record has no
    traceable ancestor.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    from_table: str
    from_ids: tuple[str, ...] = ()
    to_table: str
    to_id: str
    to_facets: tuple[str, ...] = ()
    created_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_facets(cls, data: Any) -> Any:
        # Early snapshots wrote the facets under "to_to_facets"
        if isinstance(data, dict) and "to_facets" not in data and "to_to_facets" in data:
            data = {**data, "to_facets": data["to_to_facets"]}
        return data

    @field_validator("from_ids", mode="before")
    @classmethod
    def _ids_as_strings(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple, set, frozenset)):
            return tuple(str(v) for v in value)
        return value

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, value: Any) -> Any:
        if isinstance(value, str) and value.isdigit():
            value = int(value)
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if isinstance(value, datetime) and value.tzinfo is None:
            # Naive values are read as UTC; the store selects unix seconds instead
            value = value.replace(tzinfo=timezone.utc)
        return value

    @property
    def visit_key(self) -> tuple[str, str]:
        """Deduplication key of the ancestor set this edge points at."""
        return (self.from_table, ",".join(sorted(self.from_ids)))

    @property
    def identity(self) -> tuple[str, tuple[str, ...], str, str, tuple[str, ...]]:
        """Edges with the same sources and target but different facets are distinct."""
        return (self.from_table, tuple(sorted(self.from_ids)), self.to_table, self.to_id, self.to_facets)

    @property
    def is_terminal(self) -> bool:
        return not self.from_ids

    def to_row(self) -> dict:
        """Serialize for a JSONEachRow insert."""
        return {
            "from_table": self.from_table,
            "from_ids": list(self.from_ids),
            "to_table": self.to_table,
            "to_id": self.to_id,
            "to_facets": list(self.to_facets),
            "created_at": int(self.created_at.timestamp()),
        }
