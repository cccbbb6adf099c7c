"""Tests for spry.framework.routing."""

import pytest

from spry.core.errors import MethodNotAllowedError, RouteNotFoundError
from spry.framework.routing import (
    Route,
    RouteRegistry,
    compile_pattern,
    label_for,
    normalize_methods,
    normalize_path,
)


class TestNormalizePath:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("greet", "/greet/"),
            ("/greet", "/greet/"),
            ("greet/", "/greet/"),
            ("  /greet/alice//  ", "/greet/alice/"),
            ("", "//"),
            ("/", "//"),
        ],
    )
    def test_canonical_form(self, raw, expected):
        assert normalize_path(raw) == expected

    @pytest.mark.parametrize("raw", ["a/b", "/a/b/", "//a//", " x ", ""])
    def test_idempotent(self, raw):
        once = normalize_path(raw)
        assert normalize_path(once) == once


class TestHelpers:
    def test_methods_default_to_post(self):
        assert normalize_methods(None) == ["POST"]
        assert normalize_methods([]) == ["POST"]

    def test_methods_upper_and_trim(self):
        assert normalize_methods(" get ") == ["GET"]
        assert normalize_methods(["get", "Post "]) == ["GET", "POST"]

    def test_label(self):
        assert label_for("/user_profile/{id}/") == "User Profile  Id"

    def test_pattern_is_anchored(self):
        pattern = compile_pattern("/user/{id}/")
        assert pattern.match("/user/5/").groups() == ("5",)
        assert pattern.match("/user/5/extra/") is None
        assert pattern.match("/api/user/5/") is None


class TestRouteFromRule:
    def test_bare_controller(self):
        route = Route.from_rule("ping", "Health::ping")
        assert route.path == "/ping/"
        assert route.controller == "Health::ping"
        assert route.methods == ["POST"]
        assert route.label == "Ping"

    def test_structured_rule_keeps_extras(self):
        route = Route.from_rule(
            "/users/{id}",
            {"controller": "Users::get", "methods": "get", "public": False, "cache": 30},
        )
        assert route.methods == ["GET"]
        assert route.public is False
        assert route.extra == {"cache": 30}
        assert route.placeholders == ["id"]
        assert route.to_dict()["cache"] == 30

    def test_to_dict_names_callables(self):
        def handler():
            return None

        route = Route.from_rule("/x/", handler)
        assert route.to_dict()["controller"].endswith("handler")


class TestRouteRegistry:
    """Lookup order: exact, then placeholder pattern, then stripped fallback."""

    @pytest.fixture
    def registry(self):
        reg = RouteRegistry()
        reg.load(
            {
                "/user/{id}/": {"controller": "Users::get", "methods": ["GET"]},
                "/user/me/": {"controller": "Users::me", "methods": ["GET"]},
                "/item/{a}/": "Items::first",
                "/item/{b}/": "Items::second",
                "/disabled/": {"controller": "X::y", "active": False},
                "/empty/": "",
            }
        )
        return reg

    def test_inactive_and_empty_routes_skipped(self, registry):
        assert "/disabled/" not in registry
        assert "/empty/" not in registry
        assert len(registry) == 4

    def test_exact_beats_pattern(self, registry):
        assert registry.match("/user/me/").controller == "Users::me"

    def test_pattern_match(self, registry):
        route = registry.match("/user/42")
        assert route.controller == "Users::get"
        assert registry.captures(route, "/user/42") == {"id": "42"}

    def test_first_registered_pattern_wins(self, registry):
        assert registry.match("/item/x/").controller == "Items::first"

    def test_stripped_fallback(self, registry):
        route = registry.match("/user/")
        assert route.controller == "Users::get"
        assert registry.captures(route, "/user/") == {}

    def test_placeholder_is_single_segment(self, registry):
        with pytest.raises(RouteNotFoundError):
            registry.match("/user/1/2/")

    def test_not_found(self, registry):
        with pytest.raises(RouteNotFoundError) as exc_info:
            registry.match("/nope/")
        assert exc_info.value.path == "/nope/"

    def test_method_checked(self, registry):
        assert registry.get_route("/user/1/", "GET").controller == "Users::get"
        with pytest.raises(MethodNotAllowedError) as exc_info:
            registry.get_route("/user/1/", "POST")
        assert exc_info.value.allowed == ["GET"]

    def test_unsupported_method_is_not_allowed(self, registry):
        with pytest.raises(MethodNotAllowedError):
            registry.get_route("/item/x/", None)

    def test_add_route_replaces(self, registry):
        registry.add_route("user/me", "Users::other")
        assert registry.match("/user/me/").controller == "Users::other"

    def test_public_routes(self):
        reg = RouteRegistry()
        reg.load({"/a/": "A::a", "/b/": {"controller": "B::b", "public": False}})
        assert list(reg.public_routes()) == ["/a/"]
        assert list(reg.all()) == ["/a/", "/b/"]
