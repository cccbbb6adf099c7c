"""
Spry application facade and request lifecycle.

``Spry`` owns the application-level registries (routes, controllers,
hooks/filters, response codes, components, providers) and runs one request
at a time through a fixed pipeline::

    run()
     ├─ configure      load config, codes, components; "configure" filter
     │                 OPTIONS preflight answered here with headers only
     ├─ get_path       "get_path" filter, then "set_path" hook
     ├─ set_routes     once per application, then "set_routes" hook
     ├─ get_route      match + method check, "get_route" filter, "set_route" hook
     ├─ fetch_params   "params" filter, then "set_params" hook
     ├─ validate       route schema, "validate_params" filter
     ├─ invoke         controller called with (params, meta)
     └─ send_response  "response" filter → send_output → "output" filter

Every step that fails raises a typed :class:`~spry.core.errors.SpryError`;
``run`` converts it with :meth:`Spry.stop`.  Output is terminal: ``stop``
and ``send_output`` raise :class:`Halt` carrying the final :class:`Output`,
which ``run`` catches and returns.  Controllers may call ``spry.stop(...)``
themselves to end the request early.

Per-request state lives in a :class:`~spry.framework.context.RequestContext`
exposed to controllers through :attr:`Spry.context`.

Example::

    spry = Spry({"salt": "s3cret", "routes": {"/greet/{name}/": {
        "controller": "Greeter::hello", "methods": ["GET"],
        "params": {"name": {"required": True, "type": "string"}},
    }}})
    spry.register_controller(Greeter)
    output = spry.run(request=Request(method="GET", uri="/greet/alice/"))
    output.json()["status"]    # "success"

Tags:
    lifecycle, facade, hooks, spry-framework

Doc-Types:
    api-reference
"""

from __future__ import annotations

import json
import warnings
from collections.abc import Iterable, Mapping
from contextvars import ContextVar
from pathlib import Path
from typing import Any

from spry.core.errors import (
    ConfigError,
    ControllerError,
    OutputMalformedError,
    SaltMissingError,
    SpryError,
    SpryWarning,
)
from spry.core.logging import LogContext, bind_context, configure_logging, get_logger, is_configured
from spry.core.settings import SpryConfig, load_config
from spry.framework.components import load_components
from spry.framework.context import Request, RequestContext
from spry.framework.controllers import ControllerRegistry, capture_echo, invoke
from spry.framework.hooks import HookRegistry
from spry.framework.params import fetch_params, validate_params
from spry.framework.providers import Providers
from spry.framework.responses import (
    Envelope,
    Output,
    ResponseCodeTable,
    build_response,
    is_envelope,
)
from spry.framework.routing import Route, RouteRegistry, normalize_path
from spry.framework.runner import decode_bundle
from spry.framework.validator import Validator

log = get_logger(__name__)

DEFAULT_RESPONSE_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Origin, X-Requested-With, Content-Type, Accept, Authorization",
}

CLI_PATH = "::cli"

_current_context: ContextVar[RequestContext | None] = ContextVar("spry_request_context", default=None)


class Halt(Exception):
    """Raised when a response has been emitted; carries the final output."""

    def __init__(self, output: Output):
        super().__init__(output.body)
        self.output = output


class Spry:
    """The application: registries plus the per-request pipeline."""

    def __init__(self, config: SpryConfig | Mapping[str, Any] | str | Path | None = None):
        self._source = config
        self._config: SpryConfig | None = None
        self._components: list[Any] = []
        self._routes_set = False

        self.controllers = ControllerRegistry()
        self.hooks = HookRegistry(self.controllers)
        self.routes = RouteRegistry()
        self.codes = ResponseCodeTable()
        self.providers: Providers | None = None

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def register_controller(self, controller: Any, name: str | None = None) -> str:
        return self.controllers.register(controller, name)

    def register_component(self, component: Any) -> None:
        """Queue a component; it is loaded when the application is configured."""
        if self._config is not None:
            raise ConfigError("Components must be registered before the first run()")
        self._components.append(component)

    def get_components(self) -> list[Any]:
        return list(self._components)

    def add_hook(self, keys: str | Iterable[str], controller: Any, extra_data: Any = None, order: int = 0) -> None:
        self.hooks.add_hook(keys, controller, extra_data, order)

    def add_filter(self, keys: str | Iterable[str], controller: Any, extra_data: Any = None, order: int = 0) -> None:
        self.hooks.add_filter(keys, controller, extra_data, order)

    def run_hook(self, key: str, data: Any = None, meta: Any = None) -> None:
        self.hooks.run_hook(key, data, meta)

    def run_filter(self, key: str, data: Any = None, meta: Any = None) -> Any:
        return self.hooks.run_filter(key, data, meta)

    # =========================================================================
    # STATE ACCESSORS
    # =========================================================================

    @property
    def config(self) -> SpryConfig:
        if self._config is None:
            self.configure()
        return self._config

    @property
    def context(self) -> RequestContext:
        """The current request's context (a fresh one outside ``run``)."""
        ctx = _current_context.get()
        if ctx is None:
            ctx = RequestContext()
            _current_context.set(ctx)
        return ctx

    def get_version(self) -> str:
        from spry import __version__

        return __version__

    def get_project_path(self) -> str | None:
        return self.config.project_path

    def get_request_id(self) -> str:
        return self.context.request_id

    def get_method(self) -> str | None:
        return self.context.method

    def get_meta(self) -> dict[str, Any]:
        return self.context.meta

    def params(self, name: str = "") -> Any:
        return self.context.param(name)

    def set_params(self, params: Mapping[str, Any] | None) -> None:
        ctx = self.context
        if params:
            ctx.params = {**ctx.params, **params}
        self.run_hook("set_params", ctx.params, ctx.meta)

    def is_cli(self) -> bool:
        return self.context.cli

    def is_cron(self) -> bool:
        return self.context.cron

    def is_test(self) -> bool:
        return self.context.test

    def is_background_process(self) -> bool:
        return self.context.background_process

    def set_auth(self, auth: Any) -> None:
        self.context.auth = auth
        self.run_hook("set_auth", auth)

    def auth(self) -> Any:
        return self.context.auth

    def validator(self, params: Mapping[str, Any] | None = None) -> Validator:
        return Validator(dict(params) if params is not None else self.context.params)

    def db(self, meta: Any = None) -> Any:
        return self._providers().db(meta)

    def log(self, message: Any = None) -> Any:
        return self._providers().log(message)

    def _providers(self) -> Providers:
        if self.providers is None:
            self.configure()
        return self.providers

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def configure(self, source: SpryConfig | Mapping[str, Any] | str | Path | None = None) -> SpryConfig:
        """Load config, response codes and components. Runs once per application.

        Raises:
            ConfigMissingError / ConfigMalformedError: unusable config.
        """
        if self._config is not None:
            return self._config

        config = load_config(source if source is not None else self._source)

        if not is_configured():
            configure_logging(level=config.log_level, json_format=_json_format(config.log_format))

        self._config = config
        self.providers = Providers(config, self.hooks)
        if config.response_codes:
            self.codes.register_codes(config.response_codes, source="config")

        self.run_hook("initialized")

        load_components(
            [*config.components, *self._components],
            config=config,
            codes=self.codes,
            controllers=self.controllers,
        )

        filtered = self.run_filter("configure", config)
        if isinstance(filtered, SpryConfig):
            self._config = filtered
            self.providers.config = filtered

        log.info("spry.configured", routes=len(self._config.routes), components=len(self._components))
        self.run_hook("configure")
        return self._config

    def _warn_config(self, error: SpryError) -> None:
        envelope = build_response(self.codes, None, error.response_code)
        warnings.warn(f"Spry: {envelope.messages[0]}", SpryWarning, stacklevel=3)
        log.error("spry.config_error", **error.to_dict())

    # =========================================================================
    # ROUTING
    # =========================================================================

    def get_path(self, ctx: RequestContext | None = None) -> str:
        """Request path: lower-cased URI without query, ``::cli`` for CLI calls."""
        ctx = ctx or self.context
        path = ""
        if ctx.request.uri is not None:
            path = normalize_path(ctx.request.uri.lower().split("?", 1)[0])
        elif ctx.cli:
            path = CLI_PATH
        return self.run_filter("get_path", path, ctx.meta)

    def set_routes(self) -> None:
        """Build the route table from config (once) and run the ``set_routes`` hook."""
        if self._routes_set:
            return
        self.routes.load(self.config.routes)
        self._routes_set = True
        log.debug("spry.routes_set", count=len(self.routes))
        self.run_hook("set_routes", self.routes.all())

    def get_route(self, path: str | None = None, ctx: RequestContext | None = None) -> Route:
        """Resolve ``path`` (default: the current request's) for the request method.

        Raises:
            RouteNotFoundError: nothing matches.
            MethodNotAllowedError: the route does not accept the method.
        """
        ctx = ctx or self.context
        if path is None:
            if ctx.route is not None:
                return ctx.route
            path = ctx.path or ""
        self.set_routes()
        route = self.routes.get_route(path, ctx.method)
        return self.run_filter("get_route", route, ctx.meta)

    def get_routes(self) -> dict[str, dict[str, Any]]:
        """Public routes keyed by path."""
        self.set_routes()
        return {path: route.to_dict() for path, route in self.routes.public_routes().items()}

    # =========================================================================
    # RESPONSES
    # =========================================================================

    def response(
        self,
        data: Any = None,
        code: Any = 0,
        status: str | None = None,
        meta: Mapping[str, Any] | None = None,
        messages: Any = None,
    ) -> Envelope:
        """Build an envelope and run the ``response`` filter on it."""
        ctx = self.context
        envelope = build_response(self.codes, data, code, status, meta, messages, lang=ctx.lang)
        return self.run_filter("response", envelope, ctx.meta)

    def stop(
        self,
        code: Any = 0,
        status: str | None = None,
        data: Any = None,
        messages: Any = None,
        private_data: Any = None,
    ) -> None:
        """End the request with ``code``. Never returns.

        ``private_data`` is visible to ``stop`` hooks only and is stripped
        before output.
        """
        ctx = self.context
        envelope = build_response(self.codes, data, code, status, None, messages, lang=ctx.lang)
        envelope.private_data = private_data

        for entry in self.hooks.hooks("stop"):
            try:
                handle = self.controllers.resolve(entry.controller)
            except ControllerError:
                # stop hooks must not re-enter stop
                label = entry.controller if isinstance(entry.controller, str) else "stop"
                self.send_response(self.response(None, 16, messages=[label]))
            else:
                invoke(handle, envelope, None, entry.extra_data)

        envelope.private_data = None
        self.send_response(envelope)

    def send_response(self, response: Any = None) -> None:
        """Send an envelope, wrapping raw data with :meth:`response` first."""
        if not is_envelope(response):
            response = self.response(response)
        self.send_output(response)

    def send_output(self, response: Any = None, run_filters: bool = True) -> None:
        """Serialize ``response`` into the fixed output shape and halt."""
        ctx = self.context

        if self._config is not None and self._config.response_headers is not None:
            headers = dict(self._config.response_headers)
        else:
            headers = dict(DEFAULT_RESPONSE_HEADERS)

        if isinstance(response, Envelope):
            data = response.to_dict()
        elif isinstance(response, Mapping):
            data = {k: v for k, v in response.items() if k != "private_data"}
        else:
            data = {}

        payload = {
            "status": "",
            "code": "",
            "method": ctx.method,
            "time": ctx.elapsed(),
            "requestId": ctx.request_id,
            "hash": "",
            "messages": [],
            "meta": {},
            "body": None,
            **data,
        }

        result: Any = {"headers": headers, "body": json.dumps(payload, default=str)}
        if run_filters:
            result = self.run_filter("output", result, ctx.meta)

        body = "" if ctx.request.is_preflight else (result.get("body") or "")
        raise Halt(Output(headers=dict(result.get("headers") or {}), body=body))

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(
        self,
        config: Any = None,
        controller: Any = None,
        params: Any = None,
        path: str | None = None,
        process: Any = None,
        meta: Mapping[str, Any] | None = None,
        request: Request | None = None,
        *,
        cron: bool = False,
    ) -> Output:
        """Run one request through the lifecycle and return its output.

        ``config`` may also be a base64 argument bundle; explicit arguments
        win over bundle values.
        """
        ctx = RequestContext(
            request=request or Request(),
            meta=dict(meta) if isinstance(meta, Mapping) else {},
            cron=bool(cron),
            background_process=bool(process),
        )
        token = _current_context.set(ctx)
        try:
            with LogContext(request_id=ctx.request_id, path=None):
                try:
                    self._lifecycle(ctx, config, controller, params, path, meta)
                except Halt as halt:
                    return halt.output
        finally:
            _current_context.reset(token)

        raise RuntimeError("request finished without output")

    def _lifecycle(
        self,
        ctx: RequestContext,
        config: Any,
        controller: Any,
        params: Any,
        path: Any,
        meta: Any,
    ) -> None:
        try:
            bundle = decode_bundle(config) if isinstance(config, str) else None
            if bundle is not None:
                config = bundle.config
                ctx.cron = ctx.cron or bundle.cron
                ctx.background_process = ctx.background_process or bool(bundle.process)
                controller = controller if controller is not None else bundle.controller
                params = params if params is not None else bundle.params
                path = path if path is not None else bundle.path
                if meta is None and bundle.meta:
                    ctx.meta = dict(bundle.meta)

            self.configure(config)

            if ctx.request.is_preflight:
                self.send_output()

            if not self.config.salt:
                raise SaltMissingError()

            log.debug("request.started", method=ctx.method, cli=ctx.cli, cron=ctx.cron)

            if isinstance(path, str) and path:
                ctx.path = path if path == CLI_PATH else normalize_path(path)
            else:
                ctx.path = self.get_path(ctx)
            bind_context(path=ctx.path)
            self.run_hook("set_path", ctx.path, ctx.meta)

            self.set_routes()

            if controller:
                handle = self.controllers.resolve(controller)
                self.set_params(fetch_params(ctx, params, hooks=self.hooks))
                response = self._call(ctx, handle, ctx.params, ctx.meta)
            else:
                ctx.route = self.get_route(ctx.path, ctx)
                self.run_hook("set_route", ctx.route, ctx.meta)
                self.set_params(fetch_params(ctx, params, routes=self.routes, hooks=self.hooks))
                handle = self.controllers.resolve(ctx.route.controller)
                validated = validate_params(ctx, hooks=self.hooks, controllers=self.controllers)
                response = self._call(ctx, handle, validated.params, {**ctx.meta, **validated.meta})

            self.send_response(response)

        except SpryError as e:
            if isinstance(e, ConfigError):
                self._warn_config(e)
            log.info("request.stopped", **e.to_dict())
            try:
                self.stop(e.response_code, data=e.data, messages=e.messages)
            except SpryError as inner:
                log.error("request.stop_failed", **inner.to_dict())
                raise Halt(self._emergency_output(ctx, inner)) from inner

    def _call(self, ctx: RequestContext, handle: Any, params: Any, meta: Any) -> Any:
        """Invoke the controller, treating anything it prints as malformed output."""
        with capture_echo() as buffer:
            response = invoke(handle, params, meta)

        echoed = buffer.getvalue()
        if echoed:
            messages = [echoed] if ctx.test or ctx.cli else None
            self.stop(OutputMalformedError.response_code, messages=messages, private_data=echoed)
        return response

    def _emergency_output(self, ctx: RequestContext, error: SpryError) -> Output:
        """Output for failures that happen while stopping; no hooks or filters."""
        envelope = build_response(self.codes, None, error.response_code, lang=ctx.lang)
        payload = {
            "status": envelope.status,
            "code": envelope.code,
            "method": ctx.method,
            "time": ctx.elapsed(),
            "requestId": ctx.request_id,
            **{k: v for k, v in envelope.to_dict().items() if k not in ("status", "code")},
        }
        return Output(headers=dict(DEFAULT_RESPONSE_HEADERS), body=json.dumps(payload, default=str))


def _json_format(log_format: str | None) -> bool | None:
    if not log_format:
        return None
    return log_format.lower() == "json"


__all__ = ["CLI_PATH", "DEFAULT_RESPONSE_HEADERS", "Halt", "Spry"]
