"""Report server — serves the benchmark chart for a results file."""

from __future__ import annotations
import logging
from pathlib import Path

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse

from lineage_bench import __version__
from lineage_bench.bench.results import BenchmarkResult
from lineage_bench.report.chart import render_chart

logger = logging.getLogger("lineage_bench.report")


def create_app(results_path: str | Path) -> FastAPI:
    results_path = Path(results_path)

    app = FastAPI(
        title="Lineage Benchmark",
        description="Benchmark timing and table growth chart",
        version=__version__,
    )

    def _load() -> BenchmarkResult:
        if not results_path.exists():
            raise HTTPException(404, f"Results file not found: {results_path}")
        # Re-read on every request so a running benchmark shows up on refresh
        return BenchmarkResult.load(results_path)

    @app.get("/", response_class=HTMLResponse)
    async def chart():
        """Serve the chart."""
        return render_chart(_load())

    @app.get("/results")
    async def results():
        return _load().model_dump(mode="json")

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__, "results": str(results_path)}

    return app


def serve(results_path: str | Path, host: str = "127.0.0.1", port: int = 8401,
          log_level: str = "info") -> None:
    logger.info(f"Chart: http://{host}:{port}/")
    uvicorn.run(create_app(results_path), host=host, port=port, log_level=log_level)
