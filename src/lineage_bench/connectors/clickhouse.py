"""ClickHouse connector over the HTTP interface."""

from __future__ import annotations
import json
import logging
from datetime import date, datetime
from typing import Any

import httpx

from lineage_bench.connectors.base import Connector

logger = logging.getLogger("lineage_bench.connectors.clickhouse")


class ClickHouseError(Exception):
    """Raised when ClickHouse rejects a request."""

    def __init__(self, status_code: int, message: str, query: str | None = None):
        self.status_code = status_code
        self.message = message
        self.query = query
        super().__init__(f"ClickHouse error {status_code}: {message}")


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def _literal(value: Any) -> str:
    """Render a value inside an array/tuple parameter (ClickHouse literal syntax)."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return format_param(value)
    return _quote(format_param(value))


def format_param(value: Any) -> str:
    """Render a query parameter value for ``param_<name>`` binding."""
    if value is None:
        return "\\N"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        value = sorted(value)
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_literal(v) for v in value) + "]"
    if isinstance(value, str):
        # Top-level values are read in TSV-escaped form
        return value.replace("\\", "\\\\").replace("\t", "\\t").replace("\n", "\\n")
    return str(value)


class ClickHouseConnector(Connector):
    """Connect to ClickHouse for extract and load operations."""

    def __init__(self, host: str = "localhost", port: int = 8123, database: str = "default",
                 user: str = "default", password: str = "", secure: bool = False,
                 timeout: float = 60, transport: httpx.AsyncBaseTransport | None = None):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.secure = secure
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.host}:{self.port}"

    async def connect(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "X-ClickHouse-User": self.user,
                "X-ClickHouse-Key": self.password,
                "X-ClickHouse-Database": self.database,
            },
            timeout=self.timeout,
            transport=self._transport,
        )
        logger.debug(f"Connected to ClickHouse at {self.base_url} (database={self.database})")

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _post(self, content: str, params: dict[str, Any] | None = None,
                    query: str | None = None) -> httpx.Response:
        if not self._client:
            await self.connect()
        request_params = {f"param_{k}": format_param(v) for k, v in (params or {}).items()}
        if query is not None:
            request_params["query"] = query
        resp = await self._client.post("/", content=content.encode("utf-8"), params=request_params)
        if resp.is_error:
            raise ClickHouseError(resp.status_code, resp.text.strip(), query=query or content)
        return resp

    async def extract(self, query: str, params: dict[str, Any] | None = None, **kwargs) -> list[dict]:
        # Append FORMAT JSON to get structured output
        q = query.rstrip().rstrip(";")
        resp = await self._post(f"{q}\nFORMAT JSON", params=params)
        result = resp.json()
        return result.get("data", [])

    async def load(self, data: list[dict], table: str, mode: str = "append", **kwargs) -> int:
        if not data:
            return 0

        if mode == "replace":
            await self.execute(f"TRUNCATE TABLE IF EXISTS {table}")

        # ClickHouse accepts JSONEachRow format
        lines = "\n".join(json.dumps(record, default=str) for record in data)
        await self._post(lines, query=f"INSERT INTO {table} FORMAT JSONEachRow")
        logger.debug(f"Loaded {len(data)} rows into {table}")
        return len(data)

    async def execute(self, query: str, params: dict[str, Any] | None = None) -> str:
        resp = await self._post(query, params=params)
        return resp.text

    async def get_schema(self, table: str) -> list[dict]:
        return await self.extract(f"DESCRIBE TABLE {table}")


def clickhouse(
    host: str = "localhost", port: int = 8123, database: str = "default",
    user: str = "default", password: str = "", secure: bool = False,
    timeout: float = 60, transport: httpx.AsyncBaseTransport | None = None,
) -> ClickHouseConnector:
    """Create a ClickHouse connector."""
    return ClickHouseConnector(
        host=host, port=port, database=database,
        user=user, password=password, secure=secure,
        timeout=timeout, transport=transport,
    )
