"""
Hook and filter dispatcher.

Hooks are side-effect callbacks at named lifecycle points; their return
values are discarded.  Filters transform a value: each registered filter
receives the output of the previous one, and the result of the last is the
filter's value.  With nothing registered a filter is the identity.

Entries run in ascending ``order`` (lower first); entries with equal order
keep their registration order.

Lifecycle keys
--------------
Hooks:   initialized, configure, set_path, set_routes, set_route,
         set_params, stop, database, set_auth
Filters: configure, get_path, params, get_route, validate_params,
         response, output
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from spry.core.logging import get_logger
from spry.framework.controllers import ControllerRegistry, invoke

log = get_logger(__name__)

HOOK_KEYS = (
    "initialized",
    "configure",
    "set_path",
    "set_routes",
    "set_route",
    "set_params",
    "stop",
    "database",
    "set_auth",
)

FILTER_KEYS = (
    "configure",
    "get_path",
    "params",
    "get_route",
    "validate_params",
    "response",
    "output",
)


@dataclass
class HookEntry:
    controller: Any
    extra_data: Any = None
    order: int = 0


def _is_blank(controller: Any) -> bool:
    return not callable(controller) and not controller


def _keys(keys: str | Iterable[str]) -> list[str]:
    if isinstance(keys, str):
        return [keys]
    return list(keys)


class HookRegistry:
    """Ordered hook and filter lists, dispatched through a controller registry."""

    def __init__(self, controllers: ControllerRegistry):
        self._controllers = controllers
        self._hooks: dict[str, list[HookEntry]] = {}
        self._filters: dict[str, list[HookEntry]] = {}

    # ── Registration ─────────────────────────────────────────────────────

    def add_hook(self, keys: str | Iterable[str], controller: Any, extra_data: Any = None, order: int = 0) -> None:
        for key in _keys(keys):
            self._hooks.setdefault(key, []).append(HookEntry(controller, extra_data, order))
            log.debug("hook.added", key=key, order=order, lifecycle=key in HOOK_KEYS)

    def add_filter(self, keys: str | Iterable[str], controller: Any, extra_data: Any = None, order: int = 0) -> None:
        for key in _keys(keys):
            self._filters.setdefault(key, []).append(HookEntry(controller, extra_data, order))
            log.debug("filter.added", key=key, order=order, lifecycle=key in FILTER_KEYS)

    def hooks(self, key: str) -> list[HookEntry]:
        return sorted(self._hooks.get(key, []), key=lambda entry: entry.order)

    def filters(self, key: str) -> list[HookEntry]:
        return sorted(self._filters.get(key, []), key=lambda entry: entry.order)

    def has_hooks(self, key: str) -> bool:
        return bool(self._hooks.get(key))

    def has_filters(self, key: str) -> bool:
        return bool(self._filters.get(key))

    # ── Dispatch ─────────────────────────────────────────────────────────

    def run_hook(self, key: str, data: Any = None, meta: Any = None) -> None:
        """Run every hook registered for ``key``.

        Entries with an empty controller are skipped; other resolution
        errors propagate and the caller decides how to report them.
        """
        for entry in self.hooks(key):
            if _is_blank(entry.controller):
                continue
            handle = self._controllers.resolve(entry.controller)
            invoke(handle, data, meta, entry.extra_data)

    def run_filter(self, key: str, data: Any = None, meta: Any = None) -> Any:
        """Fold ``data`` through every filter registered for ``key``."""
        for entry in self.filters(key):
            if _is_blank(entry.controller):
                continue
            handle = self._controllers.resolve(entry.controller)
            data = invoke(handle, data, meta, entry.extra_data)
        return data


__all__ = ["FILTER_KEYS", "HOOK_KEYS", "HookEntry", "HookRegistry"]
