from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader for the registry import tool.

Responsibilities:
- Load YAML config (default config/import.yml)
- Validate against config_schema.json shipped with the package
- Apply defaults for every optional section
A missing file means "all defaults" only when the caller allows it.
"""

SCHEMA_PATH = Path(__file__).parent / "config_schema.json"

DEFAULT_CONFIG_PATH = Path("config/import.yml")
DEFAULT_NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_ASSISTANT_MODEL = "gpt-4o-mini"


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
class MappingConfig:
    strategy: str = "heuristic"
    model: str = DEFAULT_ASSISTANT_MODEL
    sample_rows: int = 3


@dataclass(frozen=True)
class GeocodingConfig:
    enabled: bool = True
    base_url: str = DEFAULT_NOMINATIM_URL
    user_agent: str | None = None
    timeout_seconds: float = 10.0
    delay_seconds: float = 1.0
    workers: int = 1
    region_suffix: str | None = None


@dataclass(frozen=True)
class ImportConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    mapping: MappingConfig = field(default_factory=MappingConfig)
    geocoding: GeocodingConfig = field(default_factory=GeocodingConfig)
    null_sentinels: tuple[str, ...] = ()
    logs_dir: str = "logs"


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or unreadable, or the data violates it
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


def config_from_dict(data: dict[str, Any]) -> ImportConfig:
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

    m_raw = data.get("mapping") or {}
    mapping = MappingConfig(
        strategy=m_raw.get("strategy", "heuristic"),
        model=m_raw.get("model", DEFAULT_ASSISTANT_MODEL),
        sample_rows=m_raw.get("sample_rows", 3),
    )

    g_raw = data.get("geocoding") or {}
    geocoding = GeocodingConfig(
        enabled=g_raw.get("enabled", True),
        base_url=g_raw.get("base_url", DEFAULT_NOMINATIM_URL),
        user_agent=g_raw.get("user_agent"),
        timeout_seconds=float(g_raw.get("timeout_seconds", 10.0)),
        delay_seconds=float(g_raw.get("delay_seconds", 1.0)),
        workers=g_raw.get("workers", 1),
        region_suffix=g_raw.get("region_suffix"),
    )

    return ImportConfig(
        database=db,
        mapping=mapping,
        geocoding=geocoding,
        null_sentinels=tuple(data.get("null_sentinels") or ()),
        logs_dir=data.get("logs_dir", "logs"),
    )


def load_config(path: Path, missing_ok: bool = False) -> ImportConfig:
    if not path.exists():
        if missing_ok:
            return ImportConfig()
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")
    return config_from_dict(data)
