"""Lineage edges and the ancestry resolver."""

from lineage_bench.lineage.errors import (
    InvalidInput,
    LineageError,
    LookupFailure,
    ResolutionTimeout,
)
from lineage_bench.lineage.models import LineageEdge
from lineage_bench.lineage.resolver import LineageResolver, LineageTrace, resolve_lineage

__all__ = [
    "LineageEdge",
    "LineageResolver",
    "LineageTrace",
    "resolve_lineage",
    "LineageError",
    "InvalidInput",
    "LookupFailure",
    "ResolutionTimeout",
]
