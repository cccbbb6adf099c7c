"""
HTTP adapter settings.

All values can be overridden via environment variables prefixed with
``SPRY_API_`` (``SPRY_API_PORT=8080``, ``SPRY_API_CONFIG=app.yaml``).
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SpryAPISettings(BaseSettings):
    """Settings for serving a Spry application over HTTP."""

    model_config = SettingsConfigDict(
        env_prefix="SPRY_API_",
        env_file=".env",
        extra="ignore",
    )

    # ── Server ───────────────────────────────────────────────────────────
    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8000, description="Bind port")
    debug: bool = Field(default=False, description="Expose exception details in 500 responses")
    log_level: str = Field(default="INFO", description="Log level")

    # ── Application ──────────────────────────────────────────────────────
    config: str | None = Field(default=None, description="Spry config file (YAML or JSON)")
    title: str = Field(default="Spry", description="OpenAPI title")
