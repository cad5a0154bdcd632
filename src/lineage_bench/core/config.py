"""Benchmark configuration — reads from lbench.toml, env vars, and CLI args."""

from __future__ import annotations
import logging
import os
import sys
from datetime import date
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

# Handle tomli import for Python < 3.11 compatibility
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger("lineage_bench.config")

ENV_PREFIX = "LBENCH_"


class TomlConfigSource(PydanticBaseSettingsSource):
    """lbench.toml values, ranked below env vars and .env."""

    def get_field_value(self, field, field_name):
        return None, field_name, False

    def __call__(self) -> Dict[str, Any]:
        fields = self.settings_cls.model_fields
        return {k: v for k, v in _load_toml_config().items() if k in fields}


class BenchSettings(BaseSettings):
    """Benchmark settings."""

    # ClickHouse
    clickhouse_host: str = "localhost"
    clickhouse_port: int = 8123
    clickhouse_database: str = "default"
    clickhouse_user: str = "default"
    clickhouse_password: str = ""
    clickhouse_secure: bool = False
    clickhouse_timeout: float = 60

    # Simulation
    start_date: date = date(2024, 1, 1)
    end_date: date = date(2024, 1, 2)
    daily_issue_count: int = Field(default=10, ge=0)
    daily_commit_count: int = Field(default=10, ge=0)
    project_id_range: Tuple[int, int] = (1, 10)
    issue_id_range: Tuple[int, int] = (1, 99)
    seed: Optional[int] = None
    batch_concurrency: int = Field(default=4, ge=1)
    clean_before: bool = False

    # Lineage
    lineage_concurrency: int = Field(default=8, ge=1)
    lineage_timeout: Optional[float] = None
    lineage_on_error: Literal["abort", "skip"] = "abort"
    lineage_key_mode: Literal["id_set", "id"] = "id_set"
    lineage_sample: int = Field(default=0, ge=0)

    # Output
    results_path: str = "bench_results.json"
    log_level: str = "info"

    model_config = {"env_prefix": ENV_PREFIX, "env_file": ".env", "extra": "ignore"}

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSource(settings_cls),
            file_secret_settings,
        )

    def connector_kwargs(self) -> Dict[str, Any]:
        return {
            "host": self.clickhouse_host,
            "port": self.clickhouse_port,
            "database": self.clickhouse_database,
            "user": self.clickhouse_user,
            "password": self.clickhouse_password,
            "secure": self.clickhouse_secure,
            "timeout": self.clickhouse_timeout,
        }

    def resolver_kwargs(self) -> Dict[str, Any]:
        return {
            "max_concurrency": self.lineage_concurrency,
            "timeout": self.lineage_timeout,
            "on_error": self.lineage_on_error,
            "key_mode": self.lineage_key_mode,
        }

    def public_args(self) -> Dict[str, Any]:
        """Settings recorded alongside benchmark results (no secrets)."""
        return self.model_dump(mode="json", exclude={"clickhouse_password"})


def _flatten(config: Dict[str, Any]) -> Dict[str, Any]:
    """Map lbench.toml sections onto flat settings names.

    ``[clickhouse] host = ...`` becomes ``clickhouse_host``; ``[bench]`` keys
    and top-level keys are used as-is.
    """
    flat: Dict[str, Any] = {}
    for key, value in config.items():
        if key == "clickhouse" and isinstance(value, dict):
            flat.update({f"clickhouse_{k}": v for k, v in value.items()})
        elif key == "bench" and isinstance(value, dict):
            flat.update(value)
        else:
            flat[key] = value
    return flat


def _read_toml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("rb") as f:
            return _flatten(tomllib.load(f))
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Ignoring unreadable config file {path}: {e}")
        return {}


def _load_toml_config() -> Dict[str, Any]:
    """Load configuration from lbench.toml files.

    Searches for lbench.toml in:
    1. LBENCH_HOME (~/.lbench/lbench.toml by default)
    2. Current directory (./lbench.toml)

    Returns:
        Combined configuration dict, local values taking precedence
    """
    config: Dict[str, Any] = {}

    home = Path(os.environ.get("LBENCH_HOME", "~/.lbench")).expanduser()
    global_config_path = home / "lbench.toml"
    if global_config_path.exists():
        config.update(_read_toml(global_config_path))

    local_config_path = Path("lbench.toml")
    if local_config_path.exists():
        config.update(_read_toml(local_config_path))

    return config


def get_settings(**overrides: Any) -> BenchSettings:
    """Build settings: CLI overrides > env vars > .env > lbench.toml > defaults."""
    return BenchSettings(**{k: v for k, v in overrides.items() if v is not None})
