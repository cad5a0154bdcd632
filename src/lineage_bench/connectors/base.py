"""Base connector interface."""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any


class Connector(ABC):
    """Base class for warehouse connectors."""

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection."""
        ...

    @abstractmethod
    async def extract(self, query: str, params: dict[str, Any] | None = None, **kwargs) -> list[dict]:
        """Run a query and return its rows."""
        ...

    @abstractmethod
    async def load(self, data: list[dict], table: str, **kwargs) -> int:
        """Insert rows into a table. Returns rows loaded."""
        ...

    @abstractmethod
    async def execute(self, query: str, params: dict[str, Any] | None = None) -> str:
        """Run a statement that returns no rows (DDL, TRUNCATE)."""
        ...

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, *args):
        await self.disconnect()
