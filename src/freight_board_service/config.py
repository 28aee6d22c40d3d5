"""
Configuration management for the freight board service.

Loads configuration from YAML with ZERO defaults.
Every value must be explicitly specified or startup fails.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field


class ServiceConfig(BaseModel):
    """Service identity configuration."""

    model_config = ConfigDict(extra="forbid")
    name: str
    version: str


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    model_config = ConfigDict(extra="forbid")
    host: str
    port: int
    log_level: str


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")
    level: str
    directory: str


class DatabaseConfig(BaseModel):
    """Database configuration."""

    model_config = ConfigDict(extra="forbid")
    path: str


class IdentityConfig(BaseModel):
    """Identity service connection configuration."""

    model_config = ConfigDict(extra="forbid")
    base_url: str
    me_path: str
    users_path: str
    timeout_seconds: int


class RequestConfig(BaseModel):
    """Request handling configuration."""

    model_config = ConfigDict(extra="forbid")
    max_body_size: int


class AssignmentConfig(BaseModel):
    """Bid acceptance behaviour."""

    model_config = ConfigDict(extra="forbid")
    copy_bid_amount_to_price: bool


class ListingConfig(BaseModel):
    """Pagination limits for task listings and the activation delay."""

    model_config = ConfigDict(extra="forbid")
    default_page_size: int = Field(ge=1)
    max_page_size: int = Field(ge=1)
    activation_delay_seconds: int = Field(ge=0)


class Settings(BaseModel):
    """
    Root configuration container.

    All fields are REQUIRED. No defaults exist.
    Missing fields cause immediate startup failure.
    """

    model_config = ConfigDict(extra="forbid")
    service: ServiceConfig
    server: ServerConfig
    logging: LoggingConfig
    database: DatabaseConfig
    identity: IdentityConfig
    request: RequestConfig
    assignment: AssignmentConfig
    listing: ListingConfig


def get_config_path() -> Path:
    """Determine configuration file path from CONFIG_PATH or the working directory."""
    env_value = os.environ.get("CONFIG_PATH")
    if env_value:
        return Path(env_value)
    return Path.cwd() / "config.yaml"


def load_settings(config_path: Path) -> Settings:
    """Parse and validate a YAML configuration file."""
    raw = yaml.safe_load(config_path.read_text())
    if not isinstance(raw, dict):
        msg = f"Invalid config file: {config_path}"
        raise ValueError(msg)
    return Settings(**raw)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once and cache them for the process lifetime."""
    return load_settings(get_config_path())


def clear_settings_cache() -> None:
    """Forget cached settings. Used in testing."""
    get_settings.cache_clear()


def get_safe_config() -> dict[str, Any]:
    """Get configuration as a plain dict for diagnostics."""
    return get_settings().model_dump()
