"""
Shared pytest fixtures for the Spry test-suite.

This module provides:
- Quiet structured logging for the whole session
- A recording ``Greeter`` controller and a matching route config
- A configured :class:`~spry.framework.app.Spry` app
- A ``run_json`` helper returning the decoded output envelope
"""

import json
import sys
from pathlib import Path
from typing import Any

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from spry.core.logging import configure_logging
from spry.framework.app import Spry
from spry.framework.context import Request


@pytest.fixture(autouse=True, scope="session")
def quiet_logging():
    """Configure structlog once so app runs never reconfigure it."""
    configure_logging(level="WARNING", json_format=True, force=True)


# =============================================================================
# Controllers
# =============================================================================


class Greeter:
    """Controller that records every call it receives."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []

    def hello(self, params, meta):
        self.calls.append((params, meta))
        return {"greeting": f"Hello {params['name']}"}

    def ping(self):
        self.calls.append(())
        return "pong"

    def noisy(self):
        print("debug output")
        return {"ok": True}

    def _secret(self):
        return "hidden"

    label = "not callable"


@pytest.fixture
def greeter() -> Greeter:
    return Greeter()


@pytest.fixture
def greet_config() -> dict[str, Any]:
    return {
        "salt": "test-salt",
        "routes": {
            "/greet/{name}/": {
                "controller": "Greeter::hello",
                "methods": ["GET", "POST"],
                "params": {"name": {"required": True, "type": "string"}},
            },
            "/ping/": {"controller": "Greeter::ping", "methods": "GET"},
            "/noisy/": "Greeter::noisy",
        },
    }


@pytest.fixture
def app(greet_config, greeter) -> Spry:
    spry = Spry(greet_config)
    spry.register_controller(greeter, "Greeter")
    return spry


@pytest.fixture
def run_json():
    """Run a request and return the decoded output envelope."""

    def _run(spry: Spry, method: str = "POST", uri: str = "/", body: str = "", **kwargs: Any) -> dict[str, Any]:
        request = kwargs.pop("request", None) or Request(method=method, uri=uri, body=body)
        output = spry.run(request=request, **kwargs)
        return json.loads(output.body)

    return _run
