"""
Spry configuration.

``SpryConfig`` is the single configuration object for an application: salt,
route table, response-code extensions, CORS headers and provider classes.
It is a pydantic-settings model, so every scalar can also be overridden from
the environment with the ``SPRY_`` prefix (``SPRY_SALT``, ``SPRY_LOG_LEVEL``).

Manifesto:
    Configuration should be explicit and validated once at startup.
    The facade never reads files on its own; ``load_config`` turns whatever
    the caller hands over (model, mapping, file path, JSON text) into a
    ``SpryConfig`` or raises a typed config error.

Examples:
    >>> cfg = load_config({"salt": "s3cret", "routes": {"/ping": "Health::ping"}})
    >>> cfg.routes
    {'/ping': 'Health::ping'}

Tags:
    settings, configuration, pydantic, spry-core

Doc-Types:
    api-reference
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from spry.core.errors import ConfigMalformedError, ConfigMissingError

CONFIG_SUFFIXES = (".yaml", ".yml", ".json")


class SpryConfig(BaseSettings):
    """Application configuration.

    Unknown keys are kept (``extra="allow"``) so components and controllers
    can read their own settings from ``Spry.config``.
    """

    model_config = SettingsConfigDict(
        env_prefix="SPRY_",
        extra="allow",
        arbitrary_types_allowed=True,
    )

    salt: str = ""
    routes: dict[str, Any] = Field(default_factory=dict)
    response_codes: dict[int, Any] = Field(default_factory=dict)
    response_headers: dict[str, str] | None = None

    # ── Providers (class or dotted import path) ──────────────────────────
    db_provider: Any = None
    db: dict[str, Any] = Field(default_factory=dict)
    logger_provider: Any = None
    logger: dict[str, Any] = Field(default_factory=dict)

    components: list[Any] = Field(default_factory=list)
    tests: dict[str, Any] = Field(default_factory=dict)
    project_path: str | None = None

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str | None = None


def _parse_text(text: str, *, source: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as e:
        raise ConfigMalformedError(f"Config is not valid JSON: {source}", cause=e) from e


def _read_file(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        try:
            return yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ConfigMalformedError(f"Config file is not valid YAML: {path}", cause=e) from e
    return _parse_text(text, source=str(path))


def load_config(source: SpryConfig | Mapping[str, Any] | str | Path | None) -> SpryConfig:
    """Build a :class:`SpryConfig` from a model, mapping, file path or JSON text.

    Raises:
        ConfigMissingError: ``source`` is empty or names a file that does not exist.
        ConfigMalformedError: ``source`` cannot be decoded into a mapping, or
            the mapping fails validation.
    """
    if isinstance(source, SpryConfig):
        return source

    if not source:
        raise ConfigMissingError("No config supplied")

    project_path: str | None = None

    if isinstance(source, Mapping):
        data: Any = dict(source)
    else:
        text = str(source)
        path = Path(text)
        if isinstance(source, Path) or (
            not text.lstrip().startswith(("{", "[")) and path.suffix in CONFIG_SUFFIXES
        ):
            if not path.is_file():
                raise ConfigMissingError(f"Config file not found: {text}")
            data = _read_file(path)
            project_path = str(path.resolve().parent)
        elif text.lstrip().startswith(("{", "[")):
            data = _parse_text(text, source="<string>")
        else:
            raise ConfigMissingError(f"Config file not found: {text}")

    if not isinstance(data, Mapping) or not data:
        raise ConfigMalformedError("Config must decode to a non-empty mapping")

    data = dict(data)
    if project_path and not data.get("project_path"):
        data["project_path"] = project_path

    try:
        return SpryConfig(**data)
    except ValidationError as e:
        raise ConfigMalformedError(f"Invalid config: {e.error_count()} error(s)", cause=e) from e


__all__ = ["SpryConfig", "load_config", "CONFIG_SUFFIXES"]
