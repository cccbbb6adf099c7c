"""
Tests for the FastAPI adapter.
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from spry.api.app import create_app
from spry.api.settings import SpryAPISettings
from spry.framework.app import Spry


class Echo:
    def back(self, params, meta):
        return {"params": params}

    def explode(self):
        raise RuntimeError("kaboom")


@pytest.fixture
def spry(greet_config, greeter):
    config = {
        **greet_config,
        "routes": {
            **greet_config["routes"],
            "/echo/": {"controller": "Echo::back", "methods": ["GET", "POST"]},
            "/explode/": "Echo::explode",
        },
    }
    app = Spry(config)
    app.register_controller(greeter, "Greeter")
    app.register_controller(Echo)
    return app


@pytest.fixture
def client(spry):
    return TestClient(create_app(spry))


class TestCreateApp:
    def test_returns_fastapi_instance(self, spry):
        assert isinstance(create_app(spry), FastAPI)

    def test_state(self, spry):
        settings = SpryAPISettings(debug=True, title="Custom")
        app = create_app(spry, settings=settings)
        assert app.state.spry is spry
        assert app.state.settings.debug is True
        assert app.title == "Custom"

    def test_docs_disabled(self, spry):
        assert create_app(spry).openapi_url is None

    def test_builds_spry_from_settings(self, tmp_path):
        path = tmp_path / "app.yaml"
        path.write_text("salt: from-file\nroutes:\n  /ping/: Health::ping\n")
        app = create_app(settings=SpryAPISettings(config=str(path)))
        assert app.state.spry.config.salt == "from-file"


class TestDispatch:
    def test_get_route(self, client):
        response = client.get("/greet/alice/")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert response.headers["access-control-allow-origin"] == "*"
        body = response.json()
        assert body["code"] == "0-200"
        assert body["body"] == {"greeting": "Hello alice"}

    def test_post_json_body(self, client):
        body = client.post("/echo/", content='{"a": 1}', headers={"content-type": "application/json"}).json()
        assert body["body"] == {"params": {"a": 1}}

    def test_post_form(self, client):
        body = client.post("/echo/", data={"a": "1", "b": ""}).json()
        assert body["body"] == {"params": {"a": "1", "b": ""}}

    def test_get_query(self, client):
        body = client.get("/echo/", params={"q": "x"}).json()
        assert body["body"] == {"params": {"q": "x"}}

    def test_framework_errors_are_200_envelopes(self, client):
        response = client.post("/ping/")
        assert response.status_code == 200
        assert response.json()["code"] == "0-417"

    def test_preflight(self, client):
        response = client.options("/greet/alice/")
        assert response.status_code == 200
        assert response.content == b""
        assert response.headers["access-control-allow-methods"] == "GET, POST, PUT, DELETE, OPTIONS"


class TestUnhandledErrors:
    def test_500_envelope(self, spry):
        client = TestClient(create_app(spry), raise_server_exceptions=False)
        response = client.post("/explode/")
        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "0-500"
        assert body["status"] == "error"
        assert body["messages"] == ["Error: Unknown Error."]

    def test_debug_exposes_exception(self, spry):
        app = create_app(spry, settings=SpryAPISettings(debug=True))
        client = TestClient(app, raise_server_exceptions=False)
        body = client.post("/explode/").json()
        assert body["messages"][1] == "RuntimeError: kaboom"
