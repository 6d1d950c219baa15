from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader.

Responsibilities:
- Load YAML config/sync.yml
- Validate against sync_schema.json (unknown keys rejected)
- Apply defaults
- Apply environment overrides (SHAREPOINT_*); the CLI loads .env beforehand

Database connection env vars (DATABASE_URL, PG*) are resolved at connect time
in db/postgres.py so that the YAML section stays a fallback only.
"""

SCHEMA_PATH = Path(__file__).with_name("sync_schema.json")

DEFAULT_PROGRESS_INTERVAL = 500

# logical file name -> env var overriding its SharePoint URL
FILE_URL_ENV = {
    "lawley": "SHAREPOINT_LAWLEY_FILE_URL",
    "mohadin": "SHAREPOINT_MOHADIN_FILE_URL",
}


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
    pool_size: int = 5
    statement_timeout_ms: int = 60000


@dataclass(frozen=True)
class SharePointConfig:
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    timeout_seconds: float = 60.0
    max_retries: int = 3
    retry_delay_seconds: float = 1.0


@dataclass(frozen=True)
class ChunkOverride:
    insert: int | None = None
    update: int | None = None


@dataclass(frozen=True)
class SyncConfig:
    files: dict[str, str]
    worksheets: list[str] | None
    project_id: str | None
    progress_interval: int
    chunk_overrides: dict[str, ChunkOverride] = field(default_factory=dict)
    sharepoint: SharePointConfig = field(default_factory=SharePointConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing/invalid, or the data violates it
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


def _env(name: str, fallback: Any) -> Any:
    value = os.getenv(name)
    return value if value else fallback


def load_config(path: Path) -> SyncConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e

    _validate_config_schema(data)

    files = {name: (url or "") for name, url in data["files"].items()}
    for name, env_name in FILE_URL_ENV.items():
        files[name] = _env(env_name, files.get(name, ""))

    sp_raw = data.get("sharepoint", {})
    sharepoint = SharePointConfig(
        tenant_id=_env("SHAREPOINT_TENANT_ID", sp_raw.get("tenant_id", "")),
        client_id=_env("SHAREPOINT_CLIENT_ID", sp_raw.get("client_id", "")),
        client_secret=os.getenv("SHAREPOINT_CLIENT_SECRET", ""),  # never read from YAML
        timeout_seconds=sp_raw.get("timeout_seconds", 60.0),
        max_retries=sp_raw.get("max_retries", 3),
        retry_delay_seconds=sp_raw.get("retry_delay_seconds", 1.0),
    )

    db_raw = data.get("database", {})
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
        pool_size=db_raw.get("pool_size", 5),
        statement_timeout_ms=db_raw.get("statement_timeout_ms", 60000),
    )

    overrides = {
        name: ChunkOverride(insert=o.get("insert"), update=o.get("update"))
        for name, o in data.get("chunk_overrides", {}).items()
    }

    return SyncConfig(
        files=files,
        worksheets=data.get("worksheets"),
        project_id=_env("SHAREPOINT_PROJECT_ID", data.get("project_id")),
        progress_interval=data.get("progress_interval", DEFAULT_PROGRESS_INTERVAL),
        chunk_overrides=overrides,
        sharepoint=sharepoint,
        database=db,
    )
