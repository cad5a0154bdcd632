"""lbench CLI — run the benchmark, inspect lineage, render the chart."""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from lineage_bench import __version__
from lineage_bench.bench.results import BenchmarkResult, DayTiming
from lineage_bench.bench.runner import BatchFailed, BenchmarkRunner
from lineage_bench.connectors.clickhouse import ClickHouseConnector, ClickHouseError
from lineage_bench.core.config import BenchSettings, get_settings
from lineage_bench.lineage.errors import LineageError
from lineage_bench.lineage.resolver import LineageTrace
from lineage_bench.warehouse.schema import create_tables, drop_tables, truncate_tables
from lineage_bench.warehouse.store import LineageStore

app = typer.Typer(
    name="lbench",
    help="Row-level data lineage benchmark for ClickHouse",
    no_args_is_help=True,
)
console = Console()

T = TypeVar("T")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (default: from config)"),
):
    settings = _settings()
    level = (log_level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%H:%M:%S",
    )


def _settings(**overrides) -> BenchSettings:
    try:
        return get_settings(**overrides)
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(1)


def _connector(settings: BenchSettings) -> ClickHouseConnector:
    return ClickHouseConnector(**settings.connector_kwargs())


def _with_connection(settings: BenchSettings, fn: Callable[[ClickHouseConnector], Awaitable[T]]) -> T:
    """Run ``fn`` against a fresh connection, turning failures into CLI errors."""

    async def _go() -> T:
        async with _connector(settings) as conn:
            return await fn(conn)

    try:
        return asyncio.run(_go())
    except httpx.ConnectError:
        console.print(
            f"[red]Error:[/red] Cannot connect to ClickHouse at "
            f"{settings.clickhouse_host}:{settings.clickhouse_port}"
        )
        raise typer.Exit(1)
    except (ClickHouseError, LineageError, BatchFailed) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


# ─── Schema Commands ───


@app.command()
def init():
    """Create the benchmark tables."""
    tables = _with_connection(_settings(), create_tables)
    console.print(f"[green]✓[/green] Created {len(tables)} tables")


@app.command()
def clean():
    """Truncate every benchmark table."""
    tables = _with_connection(_settings(), truncate_tables)
    console.print(f"[green]✓[/green] Truncated {len(tables)} tables")


@app.command()
def drop(yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")):
    """Drop every benchmark table."""
    if not yes:
        typer.confirm("Drop all benchmark tables?", abort=True)
    tables = _with_connection(_settings(), drop_tables)
    console.print(f"[yellow]Dropped {len(tables)} tables[/yellow]")


# ─── Benchmark Commands ───


def _print_day(timing: DayTiming) -> None:
    rows = sum(s.total_rows for s in timing.table_stats)
    lineage = f", lineage {timing.lineage_ms}ms/{timing.lineage_edges} edges" if timing.lineage_ms is not None else ""
    console.print(f"[green]●[/green] {timing.date} — {timing.duration_ms}ms, {rows} rows{lineage}")


@app.command()
def run(
    start: Optional[datetime] = typer.Option(None, "--start", formats=["%Y-%m-%d"], help="First simulated day"),
    end: Optional[datetime] = typer.Option(None, "--end", formats=["%Y-%m-%d"], help="Last simulated day"),
    issues: Optional[int] = typer.Option(None, "--issues", help="Jira issues per day"),
    commits: Optional[int] = typer.Option(None, "--commits", help="Git commits per day"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed"),
    lineage_sample: Optional[int] = typer.Option(None, "--lineage-sample", help="DWS records to trace per day"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Results JSON path"),
    clean_first: bool = typer.Option(False, "--clean", help="Truncate tables before the first day"),
):
    """Run the daily batch benchmark."""
    settings = _settings(
        start_date=start.date() if start else None,
        end_date=end.date() if end else None,
        daily_issue_count=issues,
        daily_commit_count=commits,
        seed=seed,
        lineage_sample=lineage_sample,
        results_path=str(output) if output else None,
        clean_before=clean_first or None,
    )

    async def _bench(conn: ClickHouseConnector) -> BenchmarkResult:
        await create_tables(conn)
        return await BenchmarkRunner(conn, settings, on_day=_print_day).run()

    result = _with_connection(settings, _bench)
    path = result.save(settings.results_path)

    table = Table(title="Benchmark")
    table.add_column("Date", style="bold")
    table.add_column("Duration")
    for name in result.tables:
        table.add_column(name, justify="right")
    for t in result.timings:
        counts = {s.table: s.total_rows for s in t.table_stats}
        table.add_row(t.date.isoformat(), f"{t.duration_ms}ms", *[str(counts.get(n, "—")) for n in result.tables])
    console.print(table)
    console.print(f"[green]✓[/green] Results written to [bold]{path}[/bold]")


# ─── Lineage Commands ───


@app.command()
def lineage(
    table_name: str = typer.Argument(..., metavar="TABLE", help="Table of the record, e.g. dws_projects"),
    record_id: str = typer.Argument(..., metavar="ID", help="data_id of the record"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
    on_error: Optional[str] = typer.Option(None, "--on-error", help="abort | skip"),
    key_mode: Optional[str] = typer.Option(None, "--key-mode", help="id_set | id"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Deadline in seconds"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", help="Max lookups in flight"),
):
    """Resolve the full lineage of one record."""
    settings = _settings(
        lineage_on_error=on_error,
        lineage_key_mode=key_mode,
        lineage_timeout=timeout,
        lineage_concurrency=concurrency,
    )

    async def _resolve(conn: ClickHouseConnector) -> list[LineageTrace]:
        store = LineageStore(conn)
        resolver = store.resolver(**settings.resolver_kwargs())
        roots = await store.edges_for(table_name, record_id)
        return [await resolver.trace(root) for root in roots]

    traces = _with_connection(settings, _resolve)

    if not traces:
        console.print(f"[dim]No lineage recorded for {table_name}/{record_id}[/dim]")
        return

    if as_json:
        console.print_json(json.dumps([t.to_dict() for t in traces], default=str))
        return

    for trace in traces:
        table = Table(title=f"{', '.join(trace.root.to_facets) or trace.root.to_table}")
        table.add_column("From", style="bold")
        table.add_column("IDs")
        table.add_column("To")
        table.add_column("Facets", style="dim")
        for edge in trace.edges:
            ids = ", ".join(edge.from_ids[:3]) + (f" (+{len(edge.from_ids) - 3})" if len(edge.from_ids) > 3 else "")
            table.add_row(edge.from_table, ids or "—", f"{edge.to_table}/{edge.to_id[:8]}", ", ".join(edge.to_facets))
        console.print(table)
        console.print(f"  {len(trace.edges)} edges, {trace.lookups} lookups, {trace.duration_ms}ms")
        for failure in trace.skipped:
            console.print(f"  [yellow]Skipped:[/yellow] {failure}")


# ─── Report Commands ───


def _load_results(results: Path) -> BenchmarkResult:
    if not results.exists():
        console.print(f"[red]Error:[/red] File not found: {results}")
        raise typer.Exit(1)
    return BenchmarkResult.load(results)


@app.command()
def chart(
    results: Path = typer.Argument(..., help="Benchmark results JSON"),
    output: Path = typer.Option(Path("bench_chart.html"), "--output", "-o", help="HTML output path"),
):
    """Render the benchmark chart to an HTML file."""
    from lineage_bench.report.chart import render_chart

    output.write_text(render_chart(_load_results(results)))
    console.print(f"[green]✓[/green] Chart written to [bold]{output}[/bold]")


@app.command()
def serve(
    results: Path = typer.Argument(..., help="Benchmark results JSON"),
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8401, "--port"),
):
    """Serve the benchmark chart in a browser page."""
    from lineage_bench.report.app import serve as _serve

    _load_results(results)
    console.print(f"Chart: http://{host}:{port}/")
    _serve(results, host=host, port=port, log_level=get_settings().log_level)


@app.command()
def version():
    """Show lineage-bench version."""
    console.print(f"lineage-bench v{__version__}")


if __name__ == "__main__":
    app()
