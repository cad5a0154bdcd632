"""Lineage resolution errors."""

from __future__ import annotations
from typing import Iterable


class LineageError(Exception):
    """Base class for lineage resolution failures."""


class InvalidInput(LineageError):
    """Raised when the root edge cannot be resolved (e.g. empty ``to_id``)."""

    def __init__(self, message: str, edge: object | None = None):
        self.edge = edge
        super().__init__(message)


class LookupFailure(LineageError):
    """Raised when fetching the producers of ``table``/``ids`` fails."""

    def __init__(self, table: str, ids: Iterable[str], cause: object | None = None):
        self.table = table
        self.ids = tuple(sorted(ids))
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Lineage lookup failed for {table} ids={list(self.ids)}{detail}")


class ResolutionTimeout(LineageError):
    """Raised when a traversal exceeds its deadline."""

    def __init__(self, timeout: float, lookups: int = 0):
        self.timeout = timeout
        self.lookups = lookups
        super().__init__(f"Lineage resolution timed out after {timeout}s ({lookups} lookups issued)")
