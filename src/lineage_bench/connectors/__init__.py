"""Connectors — lazy imports so the HTTP client is only loaded when used."""

from lineage_bench.connectors.base import Connector


def clickhouse(*args, **kwargs):
    from lineage_bench.connectors.clickhouse import clickhouse as _clickhouse
    return _clickhouse(*args, **kwargs)


__all__ = ["Connector", "clickhouse"]
