"""Synthetic record generators for the benchmark layers.

All generators take a ``random.Random`` so a seeded run is reproducible.
"""

from __future__ import annotations
import math
import random
import string
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone

ISSUE_TYPES = ["bug", "task", "story"]
ISSUE_STATUSES = ["open", "in-progress", "resolved", "closed"]
COMMIT_MESSAGE_TEMPLATES = [
    "fix: resolve bug #",
    "feat: add new feature #",
    "docs: update documentation #",
    "refactor: restructure code #",
    "test: add test cases #",
]

JIRA_METRIC_KEYS = ["total_days", "dev_days", "ba_days", "qa_days", "over_days"]
GIT_METRIC_KEYS = ["code_lines_added", "code_lines_deleted", "files_changed", "review_hours", "discussion_count"]
BUG_METRIC_KEYS = ["bug_days"]
PROJECT_METRIC_KEYS = [
    "commit_count_in_1m",
    "commit_count_in_3m",
    "issue_added_count_in_1m",
    "issue_added_count_in_3m",
    "bug_avg_days_in_1m",
    "bug_avg_days_in_3m",
    "bug_q0_days_in_1m",
    "bug_q1_days_in_1m",
    "bug_q2_days_in_1m",
    "bug_q3_days_in_1m",
    "bug_q4_days_in_1m",
]
BUG_QUANTILES = {
    "bug_q0_days_in_1m": 0.25,
    "bug_q1_days_in_1m": 0.5,
    "bug_q2_days_in_1m": 0.75,
    "bug_q3_days_in_1m": 0.9,
    "bug_q4_days_in_1m": 1.0,
}

_COMMIT_ID_ALPHABET = string.ascii_lowercase + string.digits


def day_timestamp(day: date) -> int:
    """Unix seconds of midnight UTC on ``day``."""
    return int(datetime.combine(day, time(), tzinfo=timezone.utc).timestamp())


def random_uuid(rng: random.Random) -> str:
    return str(uuid.UUID(int=rng.getrandbits(128), version=4))


def _metrics(keys: list[str], values: list) -> dict:
    return {"metrics.keys": list(keys), "metrics.values": [str(v) for v in values]}


def make_jira_issues(
    day: date,
    count: int,
    rng: random.Random,
    ingested_at: int,
    project_id_range: tuple[int, int] = (1, 10),
    issue_id_range: tuple[int, int] = (1, 99),
) -> list[dict]:
    """Raw Jira issues created/updated on ``day``."""
    day_ts = day_timestamp(day)
    rows = []
    for _ in range(count):
        issue_type = rng.choice(ISSUE_TYPES)
        issue_id = rng.randrange(*issue_id_range)
        rows.append({
            "data_id": random_uuid(rng),
            "data_created_at": ingested_at,
            "project_id": rng.randrange(*project_id_range),
            "issue_id": issue_id,
            "issue_code": f"{issue_type.upper()}-{issue_id}",
            "issue_created_at": day_ts,
            "issue_updated_at": day_ts,
            "issue_resolution_date": None,
            "issue_type": issue_type,
            "issue_status": rng.choice(ISSUE_STATUSES),
        })
    return rows


def make_git_commits(
    day: date,
    count: int,
    rng: random.Random,
    ingested_at: int,
    project_id_range: tuple[int, int] = (1, 10),
    issue_id_range: tuple[int, int] = (1, 99),
) -> list[dict]:
    """Raw git commits made on ``day``."""
    day_ts = day_timestamp(day)
    rows = []
    for _ in range(count):
        message = rng.choice(COMMIT_MESSAGE_TEMPLATES) + str(rng.randrange(*issue_id_range))
        rows.append({
            "data_id": random_uuid(rng),
            "commit_at": day_ts,
            "data_created_at": ingested_at,
            "project_id": rng.randrange(*project_id_range),
            "commit_id": "".join(rng.choice(_COMMIT_ID_ALPHABET) for _ in range(12)),
            "commit_message": message,
        })
    return rows


def jira_metrics(rng: random.Random) -> dict:
    """Time spent on an issue: total, split into dev/BA/QA, and the overrun."""
    total_days = round(rng.random() * 20, 2)
    dev_days = round(rng.random() * total_days * 0.5, 2)
    ba_days = round(rng.random() * total_days * 0.2, 2)
    qa_days = round(rng.random() * total_days * 0.3, 2)
    over_days = round(max(0.0, total_days - (dev_days + ba_days + qa_days)), 2)
    return _metrics(JIRA_METRIC_KEYS, [total_days, dev_days, ba_days, qa_days, over_days])


def git_metrics(rng: random.Random) -> dict:
    return _metrics(GIT_METRIC_KEYS, [
        rng.randrange(500),
        rng.randrange(200),
        rng.randrange(10) + 1,
        round(rng.random() * 8, 2),
        rng.randrange(15),
    ])


def metric_value(row: dict, key: str, default: float = 0.0) -> float:
    """Read a numeric metric from a row's ``metrics`` nested columns."""
    keys = row.get("metrics.keys") or []
    values = row.get("metrics.values") or []
    if key not in keys:
        return default
    idx = keys.index(key)
    try:
        return float(values[idx])
    except (IndexError, TypeError, ValueError):
        return default


def bug_days(total_days: float, rng: random.Random) -> float:
    """Bug lifetime: 80%–120% of the issue's total days."""
    return round(total_days * (0.8 + rng.random() * 0.4), 2)


def bug_metrics(total_days: float, rng: random.Random) -> dict:
    return _metrics(BUG_METRIC_KEYS, [bug_days(total_days, rng)])


def quantile(values: list[float], q: float) -> float:
    """Nearest-rank quantile; 0.0 for an empty sample."""
    if not values:
        return 0.0
    ordered = sorted(values)
    rank = math.ceil(round(q * len(ordered), 9))
    return ordered[min(max(rank, 1), len(ordered)) - 1]


def _mean(values: list[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


@dataclass
class ProjectAggregate:
    """One ``dws_projects`` row and the sources behind each metric group."""
    project_id: int
    metrics: dict[str, str] = field(default_factory=dict)
    # (from_table, from_ids, facets), one lineage edge each
    sources: list[tuple[str, list[str], list[str]]] = field(default_factory=list)

    def metric_columns(self) -> dict:
        return _metrics(PROJECT_METRIC_KEYS, [self.metrics[k] for k in PROJECT_METRIC_KEYS])


def aggregate_project(
    project_id: int,
    commits: list[dict],
    issues: list[dict],
    bugs: list[dict],
    commit_table: str = "dwd_git_commits",
    issue_table: str = "dwd_jira_issues",
    bug_table: str = "dwm_bugs",
) -> ProjectAggregate:
    """Aggregate a project's 3-month window.

    Input rows carry ``data_id``, ``project_id`` and ``in_1m`` (truthy when
    inside the last month); bug rows also carry ``bug_days``.
    """
    commits = [r for r in commits if int(r["project_id"]) == project_id]
    issues = [r for r in issues if int(r["project_id"]) == project_id]
    bugs = [r for r in bugs if int(r["project_id"]) == project_id]

    def ids(rows: list[dict], recent_only: bool) -> list[str]:
        return [r["data_id"] for r in rows if not recent_only or r.get("in_1m")]

    bugs_1m = [float(r["bug_days"]) for r in bugs if r.get("in_1m")]
    bugs_3m = [float(r["bug_days"]) for r in bugs]

    agg = ProjectAggregate(project_id=project_id)
    agg.metrics = {
        "commit_count_in_1m": str(len(ids(commits, True))),
        "commit_count_in_3m": str(len(commits)),
        "issue_added_count_in_1m": str(len(ids(issues, True))),
        "issue_added_count_in_3m": str(len(issues)),
        "bug_avg_days_in_1m": str(_mean(bugs_1m)),
        "bug_avg_days_in_3m": str(_mean(bugs_3m)),
    }
    for key, q in BUG_QUANTILES.items():
        agg.metrics[key] = str(quantile(bugs_1m, q))

    agg.sources = [
        (commit_table, ids(commits, True), ["commit_count_in_1m"]),
        (commit_table, ids(commits, False), ["commit_count_in_3m"]),
        (issue_table, ids(issues, True), ["issue_added_count_in_1m"]),
        (issue_table, ids(issues, False), ["issue_added_count_in_3m"]),
        (bug_table, ids(bugs, True), ["bug_avg_days_in_1m", *BUG_QUANTILES]),
        (bug_table, ids(bugs, False), ["bug_avg_days_in_3m"]),
    ]
    return agg
