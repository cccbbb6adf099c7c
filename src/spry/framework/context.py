"""
Request and per-request context.

``Request`` is the transport-neutral view of one invocation (HTTP, CLI or
programmatic).  ``RequestContext`` holds everything that belongs to one
request's lifetime (id, timing, resolved path, params, matched route, auth
and invocation flags) and is passed explicitly to every lifecycle step
instead of living in process-wide state.
"""

from __future__ import annotations

import sys
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TextIO

if TYPE_CHECKING:
    from spry.framework.routing import Route

ALLOWED_METHODS = ("POST", "GET", "PUT", "DELETE")
TEST_HEADER = "SpryTest"


@dataclass
class Request:
    """Raw request data as received from the transport."""

    method: str | None = None
    uri: str | None = None
    body: str = ""
    query: dict[str, Any] = field(default_factory=dict)
    form: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    stdin: TextIO | None = None
    cli: bool = False

    @classmethod
    def from_cli(cls, stdin: TextIO | None = None) -> Request:
        """A CLI invocation; params are read from ``stdin`` when needed."""
        return cls(cli=True, stdin=stdin if stdin is not None else sys.stdin)

    def header(self, name: str) -> str | None:
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None

    @property
    def is_preflight(self) -> bool:
        return (self.method or "").strip().upper() == "OPTIONS"

    def read_stdin(self) -> str:
        if self.stdin is None or self.stdin.isatty():
            return ""
        return self.stdin.read().strip()


@dataclass
class RequestContext:
    """State for one request, created at the start of ``Spry.run``."""

    request: Request = field(default_factory=Request)
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: float = field(default_factory=time.perf_counter)

    path: str | None = None
    params: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] = field(default_factory=dict)
    route: Route | None = None
    auth: Any = None

    cron: bool = False
    cli: bool = False
    background_process: bool = False
    test: bool = False

    def __post_init__(self) -> None:
        self.cli = self.cli or self.request.cli
        self.test = self.test or bool(self.request.header(TEST_HEADER))

    @property
    def method(self) -> str | None:
        """Upper-cased request method, ``POST`` when absent, None when unsupported."""
        method = (self.request.method or "POST").strip().upper()
        return method if method in ALLOWED_METHODS else None

    @property
    def lang(self) -> str:
        lang = self.params.get("lang") if isinstance(self.params, dict) else None
        return lang if isinstance(lang, str) and lang else "en"

    def elapsed(self) -> str:
        return f"{time.perf_counter() - self.started_at:.6f}"

    def param(self, name: str = "") -> Any:
        """Return one param (dotted names walk nested mappings) or all params."""
        if not name:
            return self.params

        if "." in name:
            value: Any = self.params
            for part in name.split("."):
                if isinstance(value, dict) and part in value:
                    value = value[part]
                else:
                    return None
            return value

        return self.params.get(name)


__all__ = ["ALLOWED_METHODS", "TEST_HEADER", "Request", "RequestContext"]
