from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader.

Responsibilities:
- Load YAML config (default: config/migration.yml)
- Validate against config_schema.json (unknown keys rejected)
- Apply defaults for every optional key
"""

__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "MigrationConfig",
    "SCHEMA_PATH",
    "load_config",
]

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")

DEFAULT_JOB_TTL_MINUTES = 30
DEFAULT_PROGRESS_TIMEOUT_SECONDS = 300.0
DEFAULT_SAMPLE_SIZE = 3
DEFAULT_DATA_SOURCE = "backfilled"
DEFAULT_MAX_WORKBOOK_MB = 20


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class MigrationConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    job_ttl_minutes: int = DEFAULT_JOB_TTL_MINUTES
    progress_timeout_seconds: float = DEFAULT_PROGRESS_TIMEOUT_SECONDS
    sample_size: int = DEFAULT_SAMPLE_SIZE
    data_source: str = DEFAULT_DATA_SOURCE
    max_workbook_mb: float = DEFAULT_MAX_WORKBOOK_MB

    @property
    def job_ttl(self) -> timedelta:
        return timedelta(minutes=self.job_ttl_minutes)

    @property
    def max_workbook_bytes(self) -> int:
        return int(self.max_workbook_mb * 1024 * 1024)


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: the schema file is missing or invalid, or the data
            violates it (wrong types, unknown keys, out-of-range values)
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path) -> MigrationConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    _validate_config_schema(data)

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    return MigrationConfig(
        database=db,
        job_ttl_minutes=data.get("job_ttl_minutes", DEFAULT_JOB_TTL_MINUTES),
        progress_timeout_seconds=data.get("progress_timeout_seconds", DEFAULT_PROGRESS_TIMEOUT_SECONDS),
        sample_size=data.get("sample_size", DEFAULT_SAMPLE_SIZE),
        data_source=data.get("data_source", DEFAULT_DATA_SOURCE),
        max_workbook_mb=data.get("max_workbook_mb", DEFAULT_MAX_WORKBOOK_MB),
    )
