"""Benchmark chart — batch duration and table growth as a line chart."""

from __future__ import annotations
import json

from lineage_bench.bench.results import BenchmarkResult

LINEAGE_TABLE = "data_lineage"


def chart_rows(result: BenchmarkResult) -> list[dict]:
    """Flatten timings to one row per day: ``date``, ``duration_ms`` and
    ``<table>_bytes`` / ``<table>_rows`` / ``<table>_part_count``."""
    rows = []
    for t in result.timings:
        row = {"date": t.date.isoformat(), "duration_ms": t.duration_ms}
        for stat in t.table_stats:
            row[f"{stat.table}_bytes"] = stat.total_bytes
            row[f"{stat.table}_rows"] = stat.total_rows
            row[f"{stat.table}_part_count"] = stat.part_count
        if t.lineage_ms is not None:
            row["lineage_ms"] = t.lineage_ms
        rows.append(row)
    return rows


def chart_payload(result: BenchmarkResult) -> dict:
    return {
        "rows": chart_rows(result),
        "tables": result.tables,
        "lineage_table": LINEAGE_TABLE,
        "args": result.args,
    }


CHART_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Lineage Benchmark</title>
<script src="https://cdn.jsdelivr.net/npm/chart.js@4"></script>
<style>
:root {
    --bg: #0d1117;
    --surface: #161b22;
    --border: #30363d;
    --text: #c9d1d9;
    --text-dim: #8b949e;
    --green: #3fb950;
    --font: 'SF Mono', 'Cascadia Code', 'JetBrains Mono', monospace;
}
* { margin:0; padding:0; box-sizing:border-box; }
body { background:var(--bg); color:var(--text); font-family:var(--font); font-size:13px; }
.container { margin:0 auto; width:1024px; padding:20px 0; }
header { margin-bottom:16px; padding-bottom:12px; border-bottom:1px solid var(--border); }
header h1 { font-size:18px; color:var(--green); font-weight:600; }
.section { background:var(--surface); border:1px solid var(--border); border-radius:8px; margin-bottom:16px; padding:16px; }
.section h3 { font-size:14px; margin-bottom:8px; }
pre { color:var(--text-dim); white-space:pre-wrap; }
.empty { padding:24px; text-align:center; color:var(--text-dim); }
</style>
</head>
<body>
<div class="container">
    <header><h1>Lineage Benchmark</h1></header>
    <div class="section"><canvas id="chart" width="1024" height="620"></canvas></div>
    <div class="section">
        <h3>Benchmark Args</h3>
        <pre id="args"></pre>
    </div>
</div>
<script>
const payload = __PAYLOAD__;

function series(key, axis, color) {
    return {
        label: key,
        data: payload.rows.map(r => r[key] ?? null),
        yAxisID: axis,
        borderColor: color,
        backgroundColor: color,
        pointRadius: 0,
        tension: 0.3,
    };
}

document.getElementById('args').textContent = JSON.stringify(payload.args, null, 2);

if (!payload.rows.length) {
    document.getElementById('chart').outerHTML = '<div class="empty">No timings recorded</div>';
} else {
    new Chart(document.getElementById('chart'), {
        type: 'line',
        data: {
            labels: payload.rows.map(r => r.date),
            datasets: [
                series('duration_ms', 'right', '#8884d8'),
                ...payload.tables.map(t =>
                    series(`${t}_rows`, 'left', t === payload.lineage_table ? '#8884d8' : '#82ca9d')),
            ],
        },
        options: {
            responsive: false,
            interaction: { mode: 'index', intersect: false },
            scales: {
                x: { grid: { color: '#30363d' } },
                left: { type: 'linear', position: 'left', grid: { color: '#30363d' } },
                right: { type: 'linear', position: 'right', grid: { drawOnChartArea: false } },
            },
        },
    });
}
</script>
</body>
</html>"""


def render_chart(result: BenchmarkResult) -> str:
    """Self-contained HTML page for ``result``."""
    payload = json.dumps(chart_payload(result), default=str)
    # Keep "</script>" inside string values from closing the tag
    payload = payload.replace("</", "<\\/")
    return CHART_HTML.replace("__PAYLOAD__", payload)
