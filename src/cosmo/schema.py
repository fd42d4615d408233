"""
Schema definitions for Cosmo.

This module defines the Pydantic models used throughout Cosmo:
- Capsule / NewCapsule: The single persisted entity (a tagged, timestamped note)
- CapsuleSearchResult: A page of capsules plus the total match count
- CapsuleStats: Aggregate statistics over the whole collection
- Settings: Runtime configuration, loadable from YAML

Design Decisions:
    - Capsules are immutable once read; updates produce a new record
    - Aggregates use camelCase aliases, matching the wire format seen by
      MCP clients (totalCount, topTags, ...)
    - Settings forbid unknown keys so typos in config files surface early
"""

import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cosmo import __version__
from cosmo.errors import ConfigError


# =============================================================================
# Capsule Models
# =============================================================================


class Capsule(BaseModel):
    """
    A single knowledge capsule.

    Attributes:
        id: Opaque unique identifier assigned by the store
        content: The note text (trimmed at creation)
        tags: Free-form tags, order preserved, never null
        timestamp: Creation time in milliseconds since epoch (ordering key)
        created_at: Store-assigned audit timestamp, display only
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., description="Unique identifier", min_length=1)
    content: str = Field(..., description="Capsule text")
    tags: list[str] = Field(default_factory=list, description="Free-form tags")
    timestamp: int = Field(..., description="Milliseconds since epoch", ge=0)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Store-assigned audit timestamp",
    )

    @field_validator("tags", mode="before")
    @classmethod
    def tags_never_null(cls, v: Any) -> Any:
        """Represent absent tags as an empty list."""
        return [] if v is None else v


class NewCapsule(BaseModel):
    """
    A capsule that has not been stored yet.

    The creating handler stamps the timestamp; the store assigns id and
    created_at on insert.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    content: str = Field(..., min_length=1)
    tags: list[str] = Field(default_factory=list)
    timestamp: int = Field(..., ge=0)


class CapsuleSearchResult(BaseModel):
    """
    One page of a capsule search.

    total_count is the number of matches independent of pagination for the
    paginated searches, and the number returned for recency queries.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    capsules: list[Capsule] = Field(default_factory=list)
    total_count: int = Field(default=0, alias="totalCount", ge=0)


class CapsuleStats(BaseModel):
    """Aggregate statistics over every capsule, as of a point in time."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    total_capsules: int = Field(default=0, alias="totalCapsules", ge=0)
    unique_tags: int = Field(default=0, alias="uniqueTags", ge=0)
    recent_capsules: int = Field(default=0, alias="recentCapsules", ge=0)
    this_month_capsules: int = Field(default=0, alias="thisMonthCapsules", ge=0)
    top_tags: list[tuple[str, int]] = Field(default_factory=list, alias="topTags")


# =============================================================================
# Settings
# =============================================================================


class Settings(BaseModel):
    """
    Runtime configuration for Cosmo.

    Attributes:
        db_path: Path to the SQLite database file
        server_name: Name reported in the MCP initialize handshake
        server_version: Version reported in the MCP initialize handshake
        log_level: Logging level name (DEBUG, INFO, ...)
        log_file: Optional file to mirror log output into
        http_host: Interface the HTTP transport binds to
        http_port: Port the HTTP transport listens on
        http_path: Route that carries JSON-RPC over HTTP
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    db_path: Path = Field(default=Path("cosmo.db"))
    server_name: str = Field(default="cosmo", min_length=1)
    server_version: str = Field(default=__version__, min_length=1)
    log_level: str = Field(default="INFO")
    log_file: Path | None = Field(default=None)
    http_host: str = Field(default="127.0.0.1")
    http_port: int = Field(default=8765, ge=1, le=65535)
    http_path: str = Field(default="/mcp")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            msg = f"Unknown log level: {v}"
            raise ValueError(msg)
        return level

    @field_validator("http_path")
    @classmethod
    def validate_http_path(cls, v: str) -> str:
        """Routes must be absolute."""
        if not v.startswith("/"):
            msg = f"http_path must start with '/': {v}"
            raise ValueError(msg)
        return v


# Environment variables that override settings file values
ENV_OVERRIDES = {
    "COSMO_DB_PATH": "db_path",
    "COSMO_LOG_LEVEL": "log_level",
    "COSMO_LOG_FILE": "log_file",
    "COSMO_HTTP_HOST": "http_host",
    "COSMO_HTTP_PORT": "http_port",
}


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def _build_settings(data: Any, source: str) -> Settings:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(path=source, message=f"Settings must be a mapping: {source}")

    merged = dict(data)
    for env_var, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            merged[key] = value

    try:
        return Settings.model_validate(merged)
    except ValidationError as e:
        raise ConfigError(
            path=source,
            message=f"Invalid settings in {source}: {e.error_count()} error(s)",
            context={"errors": e.errors(include_url=False)},
        ) from e


def load_settings(path: Path | str | None = None) -> Settings:
    """
    Load settings from a YAML file, then apply environment overrides.

    Args:
        path: Path to the YAML file. When None, only defaults and
              environment variables are used.

    Returns:
        Validated Settings object

    Raises:
        ConfigError: If the file can't be read or doesn't match the schema
    """
    if path is None:
        return _build_settings({}, "<defaults>")

    path = Path(path)
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(path=str(path), message=f"Cannot read settings: {e}") from e

    return _build_settings(data, str(path))


def load_settings_from_string(content: str) -> Settings:
    """Load settings from a YAML string."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(path="<string>", message=f"Cannot parse settings: {e}") from e
    return _build_settings(data, "<string>")
