"""
Components: packaged extensions that contribute codes, routes and setup.

A component is any class or object exposing some of these optional entry
points:

- ``get_id()``: the response-code group the component owns
- ``get_codes()``: ``{code: entry}`` for that group
- ``setup()``: called once after every component's codes are registered
- ``get_schema()``: ``{table: schema}`` merged into ``config.db["schema"]["tables"]``
- ``get_routes()``: ``{path: rule}`` merged into ``config.routes``
- ``get_tests()``: ``{name: test}`` merged into ``config.tests``

Components are registered explicitly (``Spry.register_component``) or by
dotted path in ``config.components``.  Each registered component is also
available as a controller under the ``components`` namespace, so a route
may point at ``"Greeter::hello"`` without registering ``Greeter`` twice.

Loading runs in phases across all components: codes, setup, schema, then
routes and tests.  Later registrations overwrite earlier ones; overwrites
of codes are reported, not rejected.
"""

from __future__ import annotations

import inspect
import warnings
from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from spry.core.errors import ConfigMalformedError, SpryWarning
from spry.core.logging import get_logger
from spry.core.settings import SpryConfig
from spry.framework.controllers import COMPONENT_NAMESPACE, ControllerRegistry, import_path
from spry.framework.responses import CodeConflict, ResponseCodeTable

log = get_logger(__name__)


@runtime_checkable
class Component(Protocol):
    """Minimal component shape; every other entry point is optional."""

    def get_id(self) -> int: ...


def component_name(component: Any) -> str:
    if inspect.isclass(component):
        return component.__name__
    return type(component).__name__


def resolve_component(ref: Any) -> Any:
    """Turn a component reference (object, class or dotted path) into an instance.

    Raises:
        ConfigMalformedError: a dotted path that does not import.
    """
    if isinstance(ref, str):
        found = import_path(ref)
        if found is None:
            raise ConfigMalformedError(f"Component not importable: {ref}")
        ref = found
    if inspect.isclass(ref):
        return ref()
    return ref


def _warn(message: str) -> None:
    log.error("component.diagnostic", message=message)
    warnings.warn(f"Spry Error - {message}", SpryWarning, stacklevel=3)


def _call(component: Any, name: str) -> Any:
    method = getattr(component, name, None)
    return method() if callable(method) else None


def register_codes(component: Any, table: ResponseCodeTable) -> list[CodeConflict]:
    codes = _call(component, "get_codes")
    if not codes:
        return []

    name = component_name(component)
    if not callable(getattr(component, "get_id", None)):
        _warn(
            "To register Response Codes a Component must include a get_id() method "
            f"with a unique id returned. Component ({name}) missing method get_id()"
        )
        return []

    conflicts = table.register_group(int(component.get_id()), codes, source=name)
    for conflict in conflicts:
        _warn(conflict.message)
    return conflicts


def load_components(
    components: Iterable[Any],
    *,
    config: SpryConfig,
    codes: ResponseCodeTable,
    controllers: ControllerRegistry | None = None,
) -> list[CodeConflict]:
    """Load ``components`` into ``config``, ``codes`` and ``controllers``.

    Returns every code conflict reported while registering codes.
    """
    loaded = [resolve_component(component) for component in components]

    if controllers is not None:
        for component in loaded:
            controllers.register(component, component_name(component), namespace=COMPONENT_NAMESPACE)

    conflicts: list[CodeConflict] = []
    for component in loaded:
        conflicts.extend(register_codes(component, codes))

    for component in loaded:
        _call(component, "setup")

    for component in loaded:
        schema = _call(component, "get_schema")
        if schema:
            tables = config.db.setdefault("schema", {}).setdefault("tables", {})
            tables.update(schema)

    for component in loaded:
        routes = _call(component, "get_routes")
        if routes:
            config.routes.update(routes)
        tests = _call(component, "get_tests")
        if tests:
            config.tests.update(tests)

    log.debug("components.loaded", count=len(loaded), conflicts=len(conflicts))
    return conflicts


__all__ = [
    "Component",
    "component_name",
    "load_components",
    "register_codes",
    "resolve_component",
]
