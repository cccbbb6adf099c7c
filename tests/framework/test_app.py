"""End-to-end tests for the Spry request lifecycle."""

import io
import json
import sys
import threading

import pytest

from spry.core.errors import DatabaseConnectError, SpryWarning
from spry.core.settings import SpryConfig
from spry.framework.app import DEFAULT_RESPONSE_HEADERS, Spry
from spry.framework.context import Request
from spry.framework.runner import encode_bundle


class TestHappyPath:
    def test_greet(self, app, greeter, run_json):
        result = run_json(app, "GET", "/greet/alice/")

        assert result["status"] == "success"
        assert result["code"] == "0-200"
        assert result["messages"] == ["Success!"]
        assert result["body"] == {"greeting": "Hello alice"}
        assert result["method"] == "GET"
        assert result["requestId"]
        assert greeter.calls == [({"name": "alice"}, {})]

    def test_envelope_shape(self, app, run_json):
        result = run_json(app, "GET", "/greet/alice/")
        assert set(result) == {"status", "code", "method", "time", "requestId", "hash", "messages", "meta", "body"}

    def test_default_headers(self, app):
        output = app.run(request=Request(method="GET", uri="/greet/alice/"))
        assert output.headers == DEFAULT_RESPONSE_HEADERS
        assert output.status_code == 200

    def test_query_string_ignored_for_routing(self, app, run_json):
        assert run_json(app, "GET", "/GREET/alice/?x=1")["code"] == "0-200"

    def test_post_body_and_meta(self, app, greeter, run_json):
        result = run_json(app, "POST", "/greet/bob/", body='{"extra": 1}', meta={"user": 7})
        assert result["status"] == "success"
        assert greeter.calls == [({"name": "bob"}, {"user": 7})]

    def test_explicit_params_skip_captures(self, app, greeter, run_json):
        run_json(app, "GET", "/greet/x/", params={"name": "carol"})
        assert greeter.calls[0][0] == {"name": "carol"}

    def test_explicit_controller(self, app, run_json):
        result = run_json(app, "POST", "/anything/", controller="Greeter::ping")
        assert result["body"] == "pong"
        assert result["code"] == "0-200"

    def test_context_visible_to_controller(self, app, run_json):
        seen = {}

        def whoami(params):
            seen["request_id"] = app.get_request_id()
            seen["name"] = app.params("name")
            seen["method"] = app.get_method()
            return "ok"

        app.register_controller(whoami, "whoami")
        result = run_json(app, "GET", "/greet/dave/", controller=whoami, params={"name": "dave"})
        assert seen == {"request_id": result["requestId"], "name": "dave", "method": "GET"}

    def test_controller_may_stop(self, app, run_json):
        def refuse():
            app.stop(0, "error", data={"why": "closed"})

        result = run_json(app, controller=refuse)
        assert result["code"] == "0-500"
        assert result["status"] == "error"
        assert result["body"] == {"why": "closed"}


class TestFailures:
    def test_empty_capture_fails_validation(self, app, greeter, run_json):
        result = run_json(app, "GET", "/greet//")
        assert result["code"] == "0-420"
        assert result["status"] == "error"
        assert result["messages"] == ["Error: Field did not Validate.", "Name is required."]
        assert greeter.calls == []

    def test_method_not_allowed(self, app, greeter, run_json):
        result = run_json(app, "POST", "/ping/")
        assert result["code"] == "0-417"
        assert result["status"] == "error"
        assert greeter.calls == []

    def test_unsupported_method(self, app, run_json):
        result = run_json(app, "PATCH", "/greet/alice/")
        assert result["code"] == "0-417"
        assert result["method"] is None

    def test_route_not_found(self, app, run_json):
        assert run_json(app, "GET", "/missing/")["code"] == "0-411"

    def test_malformed_params(self, app, run_json):
        assert run_json(app, "POST", "/greet/alice/", body="name=alice")["code"] == "0-514"

    def test_unknown_controller_class(self, app, run_json):
        assert run_json(app, controller="Nobody::home")["code"] == "0-412"

    def test_private_controller_method(self, app, run_json):
        assert run_json(app, controller="Greeter::_secret")["code"] == "0-515"

    def test_non_callable_member(self, app, run_json):
        assert run_json(app, controller="Greeter::label")["code"] == "0-515"

    def test_missing_controller_method(self, app, run_json):
        assert run_json(app, controller="Greeter::nope")["code"] == "0-413"

    def test_missing_salt(self, run_json):
        app = Spry({"routes": {"/ping/": "Greeter::ping"}})
        with pytest.warns(SpryWarning, match="Missing Salt"):
            result = run_json(app, "GET", "/ping/")
        assert result["code"] == "0-502"
        assert result["status"] == "error"

    def test_missing_config(self, run_json, tmp_path):
        app = Spry(str(tmp_path / "absent.yaml"))
        with pytest.warns(SpryWarning, match="Missing Config File"):
            assert run_json(app)["code"] == "0-501"

    def test_echo_is_malformed_output(self, app, run_json):
        result = run_json(app, "POST", "/noisy/")
        assert result["code"] == "0-510"
        assert result["messages"] == [
            "Error: Response Output is Malformed. Check Controller or Routes for Headers already sent"
        ]

    def test_echo_shown_in_test_mode(self, app, run_json):
        request = Request(method="POST", uri="/noisy/", headers={"SpryTest": "1"})
        result = run_json(app, request=request)
        assert result["messages"][1] == "debug output\n"

    def test_rejecting_filter_is_validation_failure(self, run_json):
        route = {"controller": lambda params: params, "params": {"n": {"filter": "int"}}}
        app = Spry({"salt": "s", "routes": {"/n/": route}})
        result = run_json(app, "POST", "/n/", '{"n": "abc"}')
        assert result["code"] == "0-420"
        assert result["status"] == "error"

    def test_unexpected_exception_propagates(self, app):
        def broken():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            app.run(controller=broken)


class TestPreflight:
    def test_options_returns_headers_only(self, app, greeter):
        output = app.run(request=Request(method="OPTIONS", uri="/greet/alice/"))
        assert output.body == ""
        assert output.headers == DEFAULT_RESPONSE_HEADERS
        assert greeter.calls == []

    def test_configured_headers_replace_defaults(self, greet_config, greeter):
        app = Spry({**greet_config, "response_headers": {"Access-Control-Allow-Origin": "https://example.com"}})
        app.register_controller(greeter, "Greeter")
        output = app.run(request=Request(method="OPTIONS", uri="/greet/alice/"))
        assert output.headers == {"Access-Control-Allow-Origin": "https://example.com"}


class TestHooksAndFilters:
    def test_stop_hook_sees_private_data(self, app, run_json):
        seen = []
        app.add_hook("stop", lambda envelope: seen.append(envelope.private_data))
        result = run_json(app, "POST", "/noisy/")
        assert seen == ["debug output\n"]
        assert "private_data" not in result

    def test_unresolvable_stop_hook(self, app, run_json):
        app.add_hook("stop", "Missing::hook")
        result = run_json(app, "GET", "/missing/")
        assert result["code"] == "0-416"
        assert result["messages"] == ["Error: Controller Not Found.", "Missing::hook"]

    def test_failing_stop_hook_uses_emergency_output(self, app, run_json):
        def hook(envelope):
            raise DatabaseConnectError("down")

        app.add_hook("stop", hook)
        result = run_json(app, "GET", "/missing/")
        assert result["code"] == "0-531"
        assert result["status"] == "error"

    def test_response_and_output_filters(self, app):
        def tag(envelope):
            envelope.meta["tagged"] = True
            return envelope

        def header(output):
            output["headers"]["X-Spry"] = "1"
            return output

        app.add_filter("response", tag)
        app.add_filter("output", header)
        output = app.run(request=Request(method="GET", uri="/greet/alice/"))
        assert output.json()["meta"] == {"tagged": True}
        assert output.headers["X-Spry"] == "1"

    def test_get_path_filter_rewrites(self, app, run_json):
        app.add_filter("get_path", lambda path: path.replace("/hello/", "/greet/"))
        assert run_json(app, "GET", "/hello/erin/")["body"] == {"greeting": "Hello erin"}

    def test_lifecycle_hooks_in_order(self, app, run_json):
        events = []
        for key in ("initialized", "configure", "set_path", "set_routes", "set_route", "set_params"):
            app.add_hook(key, lambda *args, key=key: events.append(key))
        run_json(app, "GET", "/greet/alice/")
        run_json(app, "GET", "/greet/bob/")
        assert events[:6] == ["initialized", "configure", "set_path", "set_routes", "set_route", "set_params"]
        assert events[6:] == ["set_path", "set_route", "set_params"]

    def test_configure_filter_replaces_config(self, app, run_json):
        def reroute(config):
            return SpryConfig(**{**config.model_dump(), "routes": {"/only/": "Greeter::ping"}})

        app.add_filter("configure", reroute)
        assert run_json(app, "POST", "/only/")["body"] == "pong"
        assert run_json(app, "GET", "/greet/alice/")["code"] == "0-411"

    def test_validate_params_filter(self, app, greeter, run_json):
        app.add_filter("validate_params", lambda data: {"params": {"name": data["params"]["name"].upper()}, "meta": {}})
        run_json(app, "GET", "/greet/alice/")
        assert greeter.calls == [({"name": "ALICE"}, {})]


class TestConfiguration:
    def test_component_routes_and_codes(self, run_json):
        class Weather:
            def get_id(self):
                return 9

            def get_codes(self):
                return {1: {"success": {"en": "Sunny"}}}

            def get_routes(self):
                return {"/weather/": {"controller": "Weather::today", "methods": "GET"}}

            def today(self):
                return {"sky": "clear"}

        app = Spry({"salt": "s"})
        app.register_component(Weather)
        result = run_json(app, "GET", "/weather/")
        assert result["body"] == {"sky": "clear"}
        assert app.codes.get(9, 1) == {"success": {"en": "Sunny"}}

    def test_register_component_after_configure(self, app):
        from spry.core.errors import ConfigError

        app.configure()
        with pytest.raises(ConfigError):
            app.register_component(object())

    def test_config_response_codes(self, greet_config):
        app = Spry({**greet_config, "response_codes": {4: {2: "Custom"}}})
        app.configure()
        assert app.response("x", [4, 2]).messages == ["Custom"]
        assert app.codes.conflicts == []

    def test_get_routes(self, app):
        routes = app.get_routes()
        assert list(routes) == ["/greet/{name}/", "/ping/", "/noisy/"]
        assert routes["/ping/"]["methods"] == ["GET"]

    def test_version(self, app):
        from spry import __version__

        assert app.get_version() == __version__

    def test_validator_accessor(self, app):
        v = app.validator({"n": "3"})
        assert v.integer().validate("n") == 3

    def test_set_auth_runs_hook(self, app, run_json):
        seen = []
        app.add_hook("set_auth", seen.append)

        def login(params):
            app.set_auth({"user": params["name"]})
            return app.auth()

        result = run_json(app, controller=login, params={"name": "frank"})
        assert result["body"] == {"user": "frank"}
        assert seen == [{"user": "frank"}]

    def test_db_provider(self, greet_config):
        class MemoryDb:
            def __init__(self, settings):
                self.settings = settings

        app = Spry({**greet_config, "db_provider": MemoryDb, "db": {"dsn": "memory"}})
        assert app.db().settings == {"dsn": "memory"}


class TestBundle:
    def test_bundle_supplies_run_arguments(self, greet_config, greeter, run_json):
        app = Spry()
        app.register_controller(greeter, "Greeter")
        bundle = encode_bundle(config=greet_config, path="/greet/alice/", meta={"job": 1})
        output = app.run(bundle)
        result = json.loads(output.body)
        assert result["body"] == {"greeting": "Hello alice"}
        assert greeter.calls == [({"name": "alice"}, {"job": 1})]

    def test_bundle_cron_flag(self, greet_config, greeter):
        app = Spry()
        app.register_controller(greeter, "Greeter")
        flags = []
        greeter_ping = greeter.ping

        def ping():
            flags.append(app.is_cron())
            return greeter_ping()

        app.register_controller(ping, "ping")
        app.run(encode_bundle(config=greet_config, cron=True), controller=ping)
        assert flags == [True]

    def test_malformed_bundle(self, run_json):
        app = Spry()
        with pytest.warns(SpryWarning):
            result = run_json(app, config="bm90LWpzb24")
        assert result["code"] == "0-503"


class TestAccessors:
    def test_request_flags(self, app):
        flags = {}

        def inspect_request():
            flags.update(
                cli=app.is_cli(),
                cron=app.is_cron(),
                test=app.is_test(),
                background=app.is_background_process(),
                meta=app.get_meta(),
            )

        request = Request.from_cli(io.StringIO(""))
        app.run(controller=inspect_request, request=request, process="worker", meta={"m": 1}, cron=True)
        assert flags == {"cli": True, "cron": True, "test": False, "background": True, "meta": {"m": 1}}

    def test_cli_path(self, app):
        paths = []
        app.add_hook("set_path", paths.append)
        app.run(controller="Greeter::ping", request=Request.from_cli(io.StringIO("")))
        assert paths == ["::cli"]

    def test_project_path_from_config_file(self, tmp_path):
        path = tmp_path / "app.json"
        path.write_text(json.dumps({"salt": "s"}))
        app = Spry(str(path))
        assert app.get_project_path() == str(tmp_path.resolve())

    def test_get_components(self):
        app = Spry({"salt": "s"})
        component = object()
        app.register_component(component)
        assert app.get_components() == [component]

    def test_explicit_path_is_normalized(self, app, run_json):
        paths = []
        app.add_hook("set_path", paths.append)
        assert run_json(app, "GET", path="ping")["code"] == "0-200"
        assert paths == ["/ping/"]


class TestConcurrentRequests:
    def test_overlapping_requests_keep_their_own_echo(self, run_json):
        quiet_entered = threading.Event()
        loud_entered = threading.Event()
        quiet_done = threading.Event()

        class Overlap:
            def quiet(self):
                quiet_entered.set()
                loud_entered.wait(5)
                return "quiet"

            def loud(self):
                loud_entered.set()
                quiet_done.wait(5)
                print("loud output")
                return "loud"

        app = Spry({"salt": "s", "routes": {"/quiet/": "Overlap::quiet", "/loud/": "Overlap::loud"}})
        app.register_controller(Overlap)
        app.configure()
        stdout = sys.stdout
        results = {}

        def call(uri, done=None):
            results[uri] = run_json(app, "POST", uri)
            if done is not None:
                done.set()

        quiet = threading.Thread(target=call, args=("/quiet/", quiet_done))
        loud = threading.Thread(target=call, args=("/loud/",))
        quiet.start()
        quiet_entered.wait(5)
        loud.start()
        quiet.join(10)
        loud.join(10)

        assert results["/quiet/"]["code"] == "0-200"
        assert results["/loud/"]["code"] == "0-510"
        assert sys.stdout is stdout
