"""
Route registry and matcher.

Maps a request path to exactly one route definition.

Manifesto:
    Route resolution must be predictable.  Lookup runs in a fixed order and
    pattern ties are broken by registration order, so reordering the route
    table is the only way to change which route wins.

Resolution order for ``get_route(path)``:

1. Exact match on the canonical path.
2. Placeholder match: ``{name}`` segments compile to a single-segment
   capture; the first route (in registration order) whose pattern matches
   the whole path wins.
3. Stripped fallback: drop every ``{...}`` segment from a route path and
   compare the residue with the request path (``/user/{id}/`` serves
   ``/user/``).
4. Otherwise :class:`~spry.core.errors.RouteNotFoundError`.

Tags:
    routing, registry, path-matching, spry-framework

Doc-Types:
    api-reference
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from spry.core.errors import MethodNotAllowedError, RouteNotFoundError
from spry.core.logging import get_logger

log = get_logger(__name__)

PLACEHOLDER_RE = re.compile(r"\{([^}]+)\}")
PLACEHOLDER_SEGMENT_RE = re.compile(r"\{[^}]+\}/?")
DEFAULT_METHODS = ("POST",)

_PATH_STRIP = " \t\n\r\0\x0b/"


def normalize_path(path: str) -> str:
    """Canonical ``/segment/segment/`` form. Idempotent."""
    return "/" + (path or "").strip(_PATH_STRIP) + "/"


def normalize_methods(methods: Any) -> list[str]:
    """Upper-case and trim declared methods; ``["POST"]`` when none are declared."""
    if not methods:
        return list(DEFAULT_METHODS)
    if isinstance(methods, str):
        methods = [methods]
    return [str(m).upper().strip() for m in methods]


def label_for(path: str) -> str:
    return re.sub(r"\W|_", " ", path).strip().title()


def compile_pattern(path: str) -> re.Pattern[str]:
    """Compile a route path into an anchored pattern, one group per placeholder."""
    literals = PLACEHOLDER_RE.split(path)[::2]
    return re.compile("^" + "([^/]*)".join(re.escape(part) for part in literals) + "$")


def has_placeholders(path: str) -> bool:
    return PLACEHOLDER_RE.search(path) is not None


@dataclass
class Route:
    """A declarative binding from a path template to a controller."""

    path: str
    controller: Any
    methods: list[str] = field(default_factory=lambda: list(DEFAULT_METHODS))
    active: bool = True
    public: bool = True
    label: str = ""
    params: Any = field(default_factory=dict)
    params_trim: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_rule(cls, path: str, rule: Any) -> Route:
        """Build a route from a structured rule or a bare controller reference."""
        path = normalize_path(path)

        if not isinstance(rule, Mapping):
            return cls(path=path, controller=rule, label=label_for(path))

        known = {"controller", "methods", "active", "public", "label", "params", "params_trim", "path"}
        return cls(
            path=path,
            controller=rule.get("controller", ""),
            methods=normalize_methods(rule.get("methods")),
            active=rule.get("active", True) is not False,
            public=rule.get("public", True) is not False,
            label=rule.get("label") or "",
            params=rule.get("params") or {},
            params_trim=bool(rule.get("params_trim", False)),
            extra={k: v for k, v in rule.items() if k not in known},
        )

    @property
    def placeholders(self) -> list[str]:
        return PLACEHOLDER_RE.findall(self.path)

    def to_dict(self) -> dict[str, Any]:
        controller = self.controller
        if callable(controller) and not isinstance(controller, str):
            controller = getattr(controller, "__qualname__", repr(controller))
        return {
            "path": self.path,
            "controller": controller,
            "methods": list(self.methods),
            "active": self.active,
            "public": self.public,
            "label": self.label,
            "params": self.params,
            "params_trim": self.params_trim,
            **self.extra,
        }


class RouteRegistry:
    """Insertion-ordered route table keyed by canonical path."""

    def __init__(self) -> None:
        self._routes: dict[str, Route] = {}
        self._patterns: dict[str, re.Pattern[str]] = {}

    def __contains__(self, path: str) -> bool:
        return normalize_path(path) in self._routes

    def __iter__(self) -> Iterator[Route]:
        return iter(self._routes.values())

    def __len__(self) -> int:
        return len(self._routes)

    def clear(self) -> None:
        self._routes.clear()
        self._patterns.clear()

    def add_route(self, path: str, rule: Any) -> Route:
        """Register (or replace) the route for ``path``."""
        route = rule if isinstance(rule, Route) else Route.from_rule(path, rule)
        route.path = normalize_path(path)
        self._routes[route.path] = route
        self._patterns[route.path] = compile_pattern(route.path)
        log.debug("route.added", path=route.path, methods=route.methods)
        return route

    def load(self, routes: Mapping[str, Any]) -> None:
        """Register every non-empty, active route from a config mapping."""
        for path, rule in routes.items():
            if not rule:
                continue
            if isinstance(rule, Mapping) and rule.get("active", True) is False:
                continue
            self.add_route(path, rule)

    def match(self, path: str) -> Route:
        """Resolve ``path`` to a route, ignoring the request method."""
        path = normalize_path(path)

        route = self._routes.get(path)
        if route is not None and route.controller:
            return route

        for route_path, pattern in self._patterns.items():
            if has_placeholders(route_path) and pattern.match(path):
                route = self._routes[route_path]
                if route.controller:
                    return route

        for route_path, route in self._routes.items():
            if not has_placeholders(route_path):
                continue
            if normalize_path(PLACEHOLDER_SEGMENT_RE.sub("", route_path)) == path and route.controller:
                return route

        raise RouteNotFoundError(path)

    def get_route(self, path: str, method: str | None) -> Route:
        """Resolve ``path`` and check ``method`` against the route's methods.

        Raises:
            RouteNotFoundError: nothing matches.
            MethodNotAllowedError: the route does not accept ``method``.
        """
        route = self.match(path)
        methods = normalize_methods(route.methods)
        if method not in methods:
            raise MethodNotAllowedError(method, methods).with_context(path=route.path)
        return replace(route, methods=methods)

    def captures(self, route: Route, path: str) -> dict[str, str]:
        """Placeholder values of ``route`` captured from ``path``."""
        names = route.placeholders
        if not names:
            return {}
        pattern = self._patterns.get(route.path) or compile_pattern(route.path)
        found = pattern.match(normalize_path(path))
        if found is None:
            return {}
        return dict(zip(names, found.groups(), strict=False))

    def all(self) -> dict[str, Route]:
        return dict(self._routes)

    def public_routes(self) -> dict[str, Route]:
        """Routes not explicitly marked private."""
        return {path: route for path, route in self._routes.items() if route.public is not False}


__all__ = [
    "DEFAULT_METHODS",
    "Route",
    "RouteRegistry",
    "compile_pattern",
    "label_for",
    "normalize_methods",
    "normalize_path",
]
