"""
Lazily created database and log providers.

Both providers are named in config (``db_provider`` / ``logger_provider``)
as a class or a dotted import path and are instantiated on first use, at
most once per application.

The database provider is constructed with ``config.db``; construction
failures that are connection errors become :class:`DatabaseConnectError`.
After construction the ``database`` hook runs with the provider instance.
"""

from __future__ import annotations

import inspect
import warnings
from typing import Any

from spry.core.errors import (
    DatabaseConnectError,
    DatabaseProviderMissingError,
    LogProviderMissingError,
    SpryWarning,
)
from spry.core.logging import get_logger
from spry.core.settings import SpryConfig
from spry.framework.controllers import import_path
from spry.framework.hooks import HookRegistry

log = get_logger(__name__)


def _load_class(ref: Any) -> Any:
    if isinstance(ref, str):
        return import_path(ref)
    return ref


class Providers:
    """Holds the db and log provider instances for one application."""

    def __init__(self, config: SpryConfig, hooks: HookRegistry):
        self.config = config
        self.hooks = hooks
        self._db: Any = None
        self._logger: Any = None

    def reset(self) -> None:
        self._db = None
        self._logger = None

    # ── Database ─────────────────────────────────────────────────────────

    def db(self, meta: Any = None) -> Any:
        """Return the database provider (or ``provider.meta(meta)`` when it has one).

        Raises:
            DatabaseProviderMissingError: no provider configured or importable.
            DatabaseConnectError: the provider failed to connect.
        """
        if self._db is None:
            provider = _load_class(self.config.db_provider) if self.config.db_provider else None
            if provider is None:
                raise DatabaseProviderMissingError(
                    f"Database provider not found: {self.config.db_provider!r}"
                )

            try:
                self._db = provider(self.config.db) if inspect.isclass(provider) else provider
            except (ConnectionError, OSError) as e:
                raise DatabaseConnectError(f"Database connect failed: {e}", cause=e) from e

            log.info("provider.db_ready", provider=type(self._db).__name__)
            self.hooks.run_hook("database", self._db)

        meta_method = getattr(self._db, "meta", None)
        if callable(meta_method):
            return meta_method(meta if meta is not None else {})
        return self._db

    # ── Logger ───────────────────────────────────────────────────────────

    def logger(self) -> Any:
        """Return the log provider, or None (with a warning) when none is configured.

        Raises:
            LogProviderMissingError: the configured provider cannot be imported.
        """
        if self._logger is None:
            ref = self.config.logger_provider
            if not ref:
                warnings.warn("Spry: log() called, but missing logger_provider.", SpryWarning, stacklevel=3)
                return None

            provider = _load_class(ref)
            if provider is None:
                warnings.warn("Spry: log() called, but cant find logger_provider class.", SpryWarning, stacklevel=3)
                raise LogProviderMissingError(f"Log provider not found: {ref!r}")

            if inspect.isclass(provider):
                provider = provider(self.config.logger) if self.config.logger else provider()
            self._logger = provider
        return self._logger

    def log(self, message: Any = None) -> Any:
        """Send ``message`` to the log provider; with no message return the provider."""
        provider = self.logger()
        if provider is None or message is None:
            return provider

        for name in ("message", "log"):
            method = getattr(provider, name, None)
            if callable(method):
                return method(message)

        warnings.warn('Spry: Log Provider missing method "log".', SpryWarning, stacklevel=2)
        return None


__all__ = ["Providers"]
