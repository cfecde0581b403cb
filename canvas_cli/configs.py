"""Configuration models for canvas-cli."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import click
import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from canvas_cli.errors import ConfigurationError
from canvas_cli.types import EnvOverrides

APP_NAME: str = "canvas-cli"
CONFIG_FILENAME: str = "config.yaml"

# Environment variables that override the stored configuration
ENV_BASE_URL: str = "CANVAS_BASE_URL"
ENV_ACCESS_TOKEN: str = "CANVAS_ACCESS_TOKEN"
ENV_COURSE_ID: str = "CANVAS_COURSE_ID"
ENV_ASSIGNMENT_ID: str = "CANVAS_ASSIGNMENT_ID"

# Rendering and progress settings
DEFAULT_COURSE_COLOR: str = "#000000"
TICK_INTERVAL_SECONDS: float = 0.1


def normalize_base_url(url: str) -> str:
    """Strip trailing slashes so paths can be appended with a single '/'."""
    return url.rstrip("/")


def validate_url(url: str) -> str:
    """Check that a Canvas instance URL has a scheme and a host.

    Args:
        url: URL typed by the user, e.g. ``https://school.instructure.com``.

    Returns:
        The URL without trailing slashes.

    Raises:
        ConfigurationError: If the URL cannot be used as a base URL.
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(f"Invalid Canvas URL: '{url}'")
    return normalize_base_url(url)


def validate_access_token(token: str) -> str:
    """Reject tokens with surrounding whitespace (usually a copy/paste accident)."""
    if token.strip() != token:
        raise ConfigurationError("Token cannot have any leading or trailing whitespace")
    if not token:
        raise ConfigurationError("Token cannot be empty")
    return token


class NonEmptyConfig(BaseModel):
    """Validated credentials, passed explicitly to every component that talks to Canvas.

    Attributes:
        url: Base URL of the Canvas instance, without trailing slash.
        access_token: Bearer token sent with every request.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    access_token: str

    @field_validator("url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: Any) -> Any:
        """Normalize the base URL."""
        return normalize_base_url(v) if isinstance(v, str) else v


class Config(BaseModel):
    """Stored configuration as read from the config file.

    Attributes:
        url: Base URL of the Canvas instance.
        access_token: Personal access token.
    """

    url: str | None = None
    access_token: str | None = None

    def with_env(self, environ: Mapping[str, str]) -> Config:
        """Return a copy where environment variables replace stored values."""
        update: dict[str, str] = {}
        if environ.get(ENV_BASE_URL):
            update["url"] = environ[ENV_BASE_URL]
        if environ.get(ENV_ACCESS_TOKEN):
            update["access_token"] = environ[ENV_ACCESS_TOKEN]
        return self.model_copy(update=update)

    def ensure_non_empty(self) -> NonEmptyConfig:
        """Return the validated credentials.

        Raises:
            ConfigurationError: If either value is missing, with instructions to authenticate.
        """
        if not self.url or not self.access_token:
            raise ConfigurationError(f"{APP_NAME} is not configured. Run {APP_NAME} auth")
        return NonEmptyConfig(url=self.url, access_token=self.access_token)


def default_config_path() -> Path:
    """Location of the config file in the platform's per-user config directory."""
    return Path(click.get_app_dir(APP_NAME)) / CONFIG_FILENAME


def load_config(path: Path | None = None) -> Config:
    """Load YAML configuration and parse into Config model.

    A missing file yields an empty configuration; the caller decides whether
    that is fatal via ``Config.ensure_non_empty``.

    Args:
        path: Path to YAML config. Defaults to ``default_config_path()``.

    Returns:
        Parsed Config object.

    Raises:
        yaml.YAMLError: If YAML is malformed.
        pydantic.ValidationError: If config structure is invalid.
    """
    path = path or default_config_path()
    if not path.exists():
        return Config()

    with open(path) as f:
        yaml_data = yaml.safe_load(f)

    return Config.model_validate(yaml_data or {})


def save_config(config: Config, path: Path | None = None) -> Path:
    """Write configuration to YAML, creating the config directory if needed.

    Returns:
        The path that was written.
    """
    path = path or default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(config.model_dump(), f, default_flow_style=False, sort_keys=False)
    return path


def read_env_overrides(environ: Mapping[str, str] | None = None) -> EnvOverrides:
    """Collect the target overrides (base URL, course, assignment) from the environment."""
    environ = os.environ if environ is None else environ
    return EnvOverrides(
        base_url=environ.get(ENV_BASE_URL) or None,
        course_id=environ.get(ENV_COURSE_ID) or None,
        assignment_id=environ.get(ENV_ASSIGNMENT_ID) or None,
    )
