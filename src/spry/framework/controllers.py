"""
Controller resolution and invocation.

A controller reference is whatever a route, hook or filter names as its
handler:

- ``"Class::method"`` - a registered (or importable) class plus method name
- ``"package.module.function"`` - a dotted import path
- ``(ClassOrInstance, "method")`` - an explicit pair
- any callable

:func:`parse_ref` turns those into a :class:`NamedRef` or a
:class:`CallableRef`; :meth:`ControllerRegistry.resolve` turns the ref into a
bound callable, and :func:`invoke` calls it with the most specific argument
tuple the callable can accept.

Class lookup order for ``NamedRef.target`` names:

1. bare name in the registry (``"Greet"``)
2. component namespace (``"components.Greet"``)
3. dotted import path (``"myapp.controllers.Greet"``)

Classes are instantiated with no arguments on every resolve; registered
instances are used as-is.

Tags:
    controllers, dispatch, registry, spry-framework

Doc-Types:
    api-reference
"""

from __future__ import annotations

import contextlib
import importlib
import inspect
import io
import sys
import threading
from collections.abc import Callable, Iterator
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Union

from spry.core.errors import (
    ClassNotFoundError,
    ControllerNotFoundError,
    MethodNotCallableError,
    MethodNotFoundError,
)
from spry.core.logging import get_logger

log = get_logger(__name__)

COMPONENT_NAMESPACE = "components"
REF_SEPARATOR = "::"


@dataclass(frozen=True)
class NamedRef:
    """``target::method`` where target is a class name, class or instance."""

    target: Any
    method: str

    @property
    def class_name(self) -> str:
        if isinstance(self.target, str):
            return self.target
        return getattr(self.target, "__name__", type(self.target).__name__)

    def __str__(self) -> str:
        return f"{self.class_name}{REF_SEPARATOR}{self.method}"


@dataclass(frozen=True)
class CallableRef:
    fn: Callable[..., Any]

    def __str__(self) -> str:
        return getattr(self.fn, "__qualname__", repr(self.fn))


ControllerRef = Union[NamedRef, CallableRef]


def parse_ref(ref: Any) -> ControllerRef | None:
    """Parse a controller reference; None when ``ref`` is empty or unusable."""
    if isinstance(ref, (NamedRef, CallableRef)):
        return ref

    if isinstance(ref, str):
        ref = ref.strip()
        if not ref:
            return None
        if REF_SEPARATOR in ref:
            target, _, method = ref.partition(REF_SEPARATOR)
            return NamedRef(target.strip(), method.strip())
        if "." in ref:
            module, _, attr = ref.rpartition(".")
            return NamedRef(module, attr)
        return None

    if isinstance(ref, (tuple, list)) and len(ref) == 2 and isinstance(ref[1], str):
        if not ref[0]:
            return None
        return NamedRef(ref[0], ref[1])

    if callable(ref):
        return CallableRef(ref)

    return None


def import_path(path: str) -> Any:
    """Import ``pkg.mod`` or ``pkg.mod.Attr``; None when neither exists."""
    try:
        return importlib.import_module(path)
    except ImportError:
        pass

    module_name, _, attr = path.rpartition(".")
    if not module_name:
        return None
    try:
        module = importlib.import_module(module_name)
    except ImportError:
        return None
    return getattr(module, attr, None)


def positional_capacity(fn: Callable[..., Any]) -> tuple[int, int | None]:
    """``(required, capacity)`` positional counts; capacity None means unlimited."""
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return 0, None

    required = 0
    capacity: int | None = 0
    for param in signature.parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            capacity = None
        elif param.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            if capacity is not None:
                capacity += 1
            if param.default is inspect.Parameter.empty:
                required += 1
    return required, capacity


def invoke(
    handle: Callable[..., Any],
    params: Any = None,
    meta: Any = None,
    extra_data: Any = None,
) -> Any:
    """Call ``handle`` with the most specific non-None argument tuple.

    ``(params, meta, extra_data)`` is cut after its last non-None member,
    then trimmed to what ``handle`` can take positionally.  Required
    positionals beyond the cut are filled with None.
    """
    full = [params, meta, extra_data]
    args = list(full)
    while args and args[-1] is None:
        args.pop()

    required, capacity = positional_capacity(handle)
    if len(args) < required:
        args = full[: min(required, len(full))]
    if capacity is not None:
        args = args[:capacity]

    return handle(*args)


# ── Echo capture ─────────────────────────────────────────────────────────

_echo_buffer: ContextVar[io.StringIO | None] = ContextVar("spry_echo_buffer", default=None)
_echo_lock = threading.Lock()
_echo_depth = 0
_echo_saved: Any = None


class _EchoStream(io.TextIOBase):
    """``sys.stdout`` stand-in that writes to the calling request's buffer."""

    def __init__(self, fallback: Any):
        self.fallback = fallback

    @property
    def encoding(self) -> str:
        return getattr(self.fallback, "encoding", None) or "utf-8"

    def writable(self) -> bool:
        return True

    def write(self, text: str) -> int:
        buffer = _echo_buffer.get()
        return (buffer if buffer is not None else self.fallback).write(text)

    def flush(self) -> None:
        if _echo_buffer.get() is None:
            self.fallback.flush()


@contextlib.contextmanager
def capture_echo() -> Iterator[io.StringIO]:
    """Collect whatever the current context prints while the block runs.

    ``sys.stdout`` is swapped once for all overlapping captures and
    restored when the last one exits, so concurrent requests (the HTTP
    adapter runs them in a threadpool) each see only their own output.
    """
    global _echo_depth, _echo_saved

    buffer = io.StringIO()
    token = _echo_buffer.set(buffer)
    with _echo_lock:
        if _echo_depth == 0:
            _echo_saved = sys.stdout
            sys.stdout = _EchoStream(_echo_saved)
        _echo_depth += 1
    try:
        yield buffer
    finally:
        _echo_buffer.reset(token)
        with _echo_lock:
            _echo_depth -= 1
            if _echo_depth == 0:
                sys.stdout = _echo_saved
                _echo_saved = None


class ControllerRegistry:
    """Name → controller class/instance/module lookup."""

    def __init__(self) -> None:
        self._controllers: dict[str, Any] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._controllers

    def __len__(self) -> int:
        return len(self._controllers)

    def register(self, controller: Any, name: str | None = None, *, namespace: str | None = None) -> str:
        """Register a controller under ``name`` (default: its ``__name__``)."""
        name = name or getattr(controller, "__name__", None) or type(controller).__name__
        if namespace:
            name = f"{namespace}.{name}"
        if name in self._controllers and self._controllers[name] is not controller:
            log.warning("controller.replaced", name=name)
        self._controllers[name] = controller
        log.debug("controller.registered", name=name)
        return name

    def names(self) -> list[str]:
        return sorted(self._controllers)

    def lookup(self, class_name: str) -> Any:
        """Find the object a class name refers to.

        Raises:
            ClassNotFoundError: not registered and not importable.
        """
        for candidate in (class_name, f"{COMPONENT_NAMESPACE}.{class_name}"):
            if candidate in self._controllers:
                return self._controllers[candidate]

        found = import_path(class_name)
        if found is not None:
            return found

        raise ClassNotFoundError(class_name)

    def resolve(self, ref: Any) -> Callable[..., Any]:
        """Resolve a controller reference to a callable.

        Raises:
            ControllerNotFoundError: ``ref`` is empty or unparseable.
            ClassNotFoundError: the named class cannot be found.
            MethodNotFoundError: the class has no such member.
            MethodNotCallableError: the member is private or not callable.
        """
        parsed = parse_ref(ref)
        if parsed is None:
            raise ControllerNotFoundError(ref)

        if isinstance(parsed, CallableRef):
            return parsed.fn

        target = parsed.target
        if isinstance(target, str):
            target = self.lookup(target)
        if inspect.isclass(target):
            target = target()

        if not parsed.method or not hasattr(target, parsed.method):
            raise MethodNotFoundError(parsed.class_name, parsed.method)
        if parsed.method.startswith("_"):
            raise MethodNotCallableError(str(parsed))

        member = getattr(target, parsed.method)
        if not callable(member):
            raise MethodNotCallableError(str(parsed))
        return member


__all__ = [
    "COMPONENT_NAMESPACE",
    "CallableRef",
    "ControllerRef",
    "ControllerRegistry",
    "NamedRef",
    "capture_echo",
    "invoke",
    "parse_ref",
    "import_path",
    "positional_capacity",
]
