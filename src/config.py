"""Configuration management for the feature flag admin backend."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_REPO_ROOT = Path(__file__).resolve().parents[1]
_DEFAULT_CONFIG_PATH = _REPO_ROOT / "config" / "featureflags.yml"
_USER_CONFIG_PATHS = [
    Path("~/.config/featureflags/featureflags.yml").expanduser(),
    Path("/config/featureflags.yml"),
]
_USER_SECRETS_PATHS = [
    Path("~/.config/featureflags/secrets.yml").expanduser(),
    Path("/config/secrets.yml"),
]


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML mapping from disk, returning an empty mapping if missing."""
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return data


def _yaml_settings_source(paths: list[Path]):
    """Create a Pydantic settings source for a list of YAML paths."""

    def source() -> dict[str, Any]:
        merged: dict[str, Any] = {}
        for path in paths:
            merged.update(_load_yaml(path))
        return merged

    return source


def _set_nested_value(target: dict[str, Any], path: str, value: Any) -> None:
    """Set a dotted-path value on a nested mapping, creating containers."""
    parts = path.split(".")
    cursor = target
    for key in parts[:-1]:
        node = cursor.get(key)
        if not isinstance(node, dict):
            node = {}
            cursor[key] = node
        cursor = node
    cursor[parts[-1]] = value


def _parse_env_value(raw: str, kind: str) -> Any:
    """Parse an environment value into the requested primitive type."""
    if kind == "int":
        return int(raw)
    if kind == "bool":
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    if kind == "json":
        return json.loads(raw)
    return raw


def _env_settings_source():
    """Create a settings source that maps environment variables to config keys."""
    mapping = {
        "DATABASE_URL": ("database.url", "str"),
        "DATABASE_ECHO": ("database.echo", "bool"),
        "AUDIT_ENABLED": ("audit.enabled", "bool"),
        "AUDIT_FAIL_OPEN": ("audit.fail_open", "bool"),
        "AUDIT_MAX_RESULTS": ("audit.max_results", "int"),
        "AUDIT_EXCLUDED_FIELDS": ("audit.excluded_fields", "json"),
        "LOG_LEVEL": ("logging.level", "str"),
        "LOG_JSON": ("logging.json_output", "bool"),
        "SERVICE_NAME": ("logging.service", "str"),
    }

    def source() -> dict[str, Any]:
        data: dict[str, Any] = {}
        for env_key, (path, kind) in mapping.items():
            raw = os.environ.get(env_key)
            if raw is None:
                continue
            _set_nested_value(data, path, _parse_env_value(raw, kind))
        return data

    return source


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = "sqlite:///featureflags.db"
    echo: bool = False

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        """Ensure the database URL is not blank."""
        if not value.strip():
            raise ValueError("database.url must not be empty.")
        return value.strip()


class AuditConfig(BaseModel):
    """Entity change audit configuration."""

    enabled: bool = True
    fail_open: bool = True
    max_results: int = 1000
    excluded_fields: list[str] = Field(
        default_factory=lambda: ["created_date", "updated_date"]
    )

    @field_validator("max_results")
    @classmethod
    def validate_max_results(cls, value: int) -> int:
        """Ensure the search result cap is positive."""
        if value < 1:
            raise ValueError("audit.max_results must be >= 1.")
        return value


class LoggingConfig(BaseModel):
    """Root logger configuration."""

    level: str = "INFO"
    json_output: bool = True
    service: str = "featureflags"

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Ensure the log level is a standard level name."""
        normalized = value.strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("logging.level must be a standard logging level name.")
        return normalized


class Settings(BaseSettings):
    """Application settings loaded from YAML files and environment variables."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        """Layer settings sources in descending order of precedence."""
        return (
            init_settings,
            _env_settings_source(),
            _yaml_settings_source(_USER_SECRETS_PATHS),
            _yaml_settings_source(_USER_CONFIG_PATHS),
            _yaml_settings_source([_DEFAULT_CONFIG_PATH]),
        )

    # Database Configuration
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    # Change Auditing
    audit: AuditConfig = Field(default_factory=AuditConfig)

    # Logging
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def validate_excluded_fields(self) -> "Settings":
        """Normalize audit exclusions to unique, non-empty field names."""
        seen: list[str] = []
        for name in self.audit.excluded_fields:
            cleaned = name.strip()
            if cleaned and cleaned not in seen:
                seen.append(cleaned)
        self.audit.excluded_fields = seen
        return self


# Global settings instance
settings = Settings()
