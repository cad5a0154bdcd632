"""Warehouse schema — layered ClickHouse tables plus the lineage log.

ods_*  raw synthetic records
dwd_*  cleaned records with per-record metrics
dwm_*  derived bug records
dws_*  per-project daily aggregates
data_lineage  one edge per derived record
"""

from __future__ import annotations
import logging

from lineage_bench.connectors.base import Connector

logger = logging.getLogger("lineage_bench.warehouse.schema")

ODS_JIRA_ISSUES = "ods_jira_issues"
ODS_GIT_COMMITS = "ods_git_commits"
DWD_JIRA_ISSUES = "dwd_jira_issues"
DWD_GIT_COMMITS = "dwd_git_commits"
DWM_BUGS = "dwm_bugs"
DWS_PROJECTS = "dws_projects"
DATA_LINEAGE = "data_lineage"

_JIRA_COLUMNS = """
    data_id String,
    data_created_at DateTime,
    project_id UInt32,
    issue_id UInt32,
    issue_code String,
    issue_created_at DateTime,
    issue_updated_at DateTime,
    issue_resolution_date Nullable(DateTime),
    issue_type LowCardinality(String),
    issue_status LowCardinality(String)"""

_GIT_COLUMNS = """
    data_id String,
    commit_at DateTime,
    data_created_at DateTime,
    project_id UInt32,
    commit_id String,
    commit_message String"""

_METRICS_COLUMN = """
    metrics Nested(keys String, values String)"""

DDL: dict[str, str] = {
    ODS_JIRA_ISSUES: f"""
CREATE TABLE IF NOT EXISTS {ODS_JIRA_ISSUES} ({_JIRA_COLUMNS}
) ENGINE = MergeTree
ORDER BY (project_id, issue_id, data_created_at)""",
    ODS_GIT_COMMITS: f"""
CREATE TABLE IF NOT EXISTS {ODS_GIT_COMMITS} ({_GIT_COLUMNS}
) ENGINE = MergeTree
ORDER BY (project_id, commit_at, commit_id)""",
    DWD_JIRA_ISSUES: f"""
CREATE TABLE IF NOT EXISTS {DWD_JIRA_ISSUES} ({_JIRA_COLUMNS},{_METRICS_COLUMN}
) ENGINE = MergeTree
ORDER BY (project_id, issue_id, data_created_at)""",
    DWD_GIT_COMMITS: f"""
CREATE TABLE IF NOT EXISTS {DWD_GIT_COMMITS} ({_GIT_COLUMNS},{_METRICS_COLUMN}
) ENGINE = MergeTree
ORDER BY (project_id, commit_at, commit_id)""",
    DWM_BUGS: f"""
CREATE TABLE IF NOT EXISTS {DWM_BUGS} (
    metrics_date Date,
    project_id UInt32,
    issue_id UInt32,
    bug_created_at DateTime,
    bug_updated_at DateTime,
    bug_resolution_date Nullable(DateTime),{_METRICS_COLUMN},
    data_id String,
    data_created_at DateTime
) ENGINE = MergeTree
ORDER BY (metrics_date, project_id, issue_id)""",
    DWS_PROJECTS: f"""
CREATE TABLE IF NOT EXISTS {DWS_PROJECTS} (
    metrics_date Date,
    project_id UInt32,{_METRICS_COLUMN},
    data_id String,
    data_created_at DateTime
) ENGINE = MergeTree
ORDER BY (metrics_date, project_id)""",
    DATA_LINEAGE: f"""
CREATE TABLE IF NOT EXISTS {DATA_LINEAGE} (
    from_table LowCardinality(String),
    from_ids Array(String),
    to_table LowCardinality(String),
    to_id String,
    to_facets Array(String),
    created_at DateTime
) ENGINE = MergeTree
ORDER BY (to_table, to_id)""",
}

TABLES: list[str] = list(DDL)


async def create_tables(conn: Connector) -> list[str]:
    for table in TABLES:
        await conn.execute(DDL[table])
        logger.info(f"Created table {table}")
    return TABLES


async def truncate_tables(conn: Connector) -> list[str]:
    for table in TABLES:
        await conn.execute(f"TRUNCATE TABLE IF EXISTS {table}")
    logger.info(f"Truncated {len(TABLES)} tables")
    return TABLES


async def drop_tables(conn: Connector) -> list[str]:
    for table in reversed(TABLES):
        await conn.execute(f"DROP TABLE IF EXISTS {table}")
        logger.info(f"Dropped table {table}")
    return TABLES
