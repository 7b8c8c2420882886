"""Configuration utilities for the forms service.

This module loads application configuration with the following rules:
- Primary source: `formbank_config.json` at the project root.
- Overrides: environment variables, then optional text files under `config/`.
- Validation: Pydantic models enforce required fields and value constraints.
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator


CONFIG_DIR = Path("config")
ROOT_CONFIG = Path("formbank_config.json")
logger = logging.getLogger(__name__)


def _read_config_file(rel_path: str) -> Optional[str]:
    path = CONFIG_DIR / rel_path
    try:
        if path.exists():
            return path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as e:
        # Recoverable: log and ignore unreadable override
        logger.warning("Failed to read override %s: %s", path, e)
        return None
    return None


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(key, default)


def _truthy(text: object) -> bool:
    return str(text).strip().lower() in {"1", "true", "yes", "on"}


class DatabaseConfig(BaseModel):
    dsn: str
    auto_apply_migrations: bool = Field(default=True)

    @field_validator("dsn")
    @classmethod
    def dsn_must_be_non_empty(cls, v: str) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("database.dsn must be a non-empty string")
        return v


class IdConfig(BaseModel):
    pad_width: int = Field(default=3, ge=0, le=12)


class StatisticsConfig(BaseModel):
    batch_size: int = Field(default=500, gt=0)


class PaginationConfig(BaseModel):
    max_limit: int = Field(default=1000, gt=0)


class AppConfig(BaseModel):
    database: DatabaseConfig
    ids: IdConfig = Field(default_factory=IdConfig)
    statistics: StatisticsConfig = Field(default_factory=StatisticsConfig)
    pagination: PaginationConfig = Field(default_factory=PaginationConfig)


def _read_json_file(path: Path) -> dict:
    try:
        if path.exists():
            return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error("Failed to read JSON config %s: %s", path, e)
    return {}


def load_config() -> AppConfig:
    """Load configuration with validation.

    Precedence (highest first):
    1) Environment variables
    2) Text files in `config/` (optional)
    3) formbank_config.json at project root (primary base)
    4) Safe defaults for development
    """

    base = _read_json_file(ROOT_CONFIG)

    def _base(path: str, default: Optional[str] = None) -> Optional[str]:
        cur: object = base
        for key in path.split("."):
            if not isinstance(cur, dict) or key not in cur:
                return default
            cur = cur[key]
        return str(cur) if cur is not None else default

    dsn = (
        _env("TEST_DATABASE_URL")
        or _env("DATABASE_URL")
        or _read_config_file("database.url")
        or _base("database.dsn")
        or "sqlite+pysqlite:///:memory:"
    )
    auto_migrate_text = (
        _env("AUTO_APPLY_MIGRATIONS")
        or _read_config_file("database.auto_apply_migrations")
        or _base("database.auto_apply_migrations", "true")
    )
    pad_width_text = _env("ID_PAD_WIDTH") or _read_config_file("ids.pad_width") or _base("ids.pad_width", "3")
    batch_size_text = (
        _env("STATS_BATCH_SIZE") or _read_config_file("statistics.batch_size") or _base("statistics.batch_size", "500")
    )
    max_limit_text = (
        _env("PAGINATION_MAX_LIMIT")
        or _read_config_file("pagination.max_limit")
        or _base("pagination.max_limit", "1000")
    )

    try:
        return AppConfig(
            database=DatabaseConfig(dsn=dsn, auto_apply_migrations=_truthy(auto_migrate_text)),
            ids=IdConfig(pad_width=int(str(pad_width_text).strip())),
            statistics=StatisticsConfig(batch_size=int(str(batch_size_text).strip())),
            pagination=PaginationConfig(max_limit=int(str(max_limit_text).strip())),
        )
    except (PydanticValidationError, ValueError) as e:
        logger.error("Invalid application configuration: %s", e)
        raise


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    return load_config()


__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "IdConfig",
    "StatisticsConfig",
    "PaginationConfig",
    "load_config",
    "get_config",
]
