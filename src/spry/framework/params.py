"""
Request parameter pipeline.

Two stages, both driven by the :class:`~spry.framework.app.Spry` facade:

``fetch_params``
    Collect the raw parameters for the request: explicit params when given,
    otherwise the request body, then stdin (CLI only), then the query string
    (GET) or form fields (POST).  String payloads starting with ``{`` or
    ``[`` are JSON-decoded; any other string payload is malformed.  Values
    captured by ``{placeholder}`` segments of the matched route are merged
    in, and the ``params`` filter runs on the result.

``validate_params``
    Apply the matched route's declarative schema.  Without a schema params
    pass through unchanged.  With one, only declared fields survive (plus
    ``test_data``); each field is checked in a fixed rule order and errors
    accumulate across fields.  Fields flagged ``meta`` are routed to the
    meta mapping instead of params.

Schema example::

    params:
      name:     {required: true, type: string, trim: true}
      age:      {type: int, between: [18, 120], default: 18}
      password: {required: true, type: password}
      confirm:  {required: {password_reset: true}, matches: password}
      tags:     {type: array, trim: true, unique: true}
      token:    {meta: true}
      - legacy_field
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from spry.core.errors import MalformedParamsError, ValidationFailedError
from spry.core.logging import get_logger
from spry.framework.validator import Validator

if TYPE_CHECKING:
    from spry.framework.context import RequestContext
    from spry.framework.controllers import ControllerRegistry
    from spry.framework.hooks import HookRegistry
    from spry.framework.routing import RouteRegistry

log = get_logger(__name__)

TYPE_RULES: dict[str, str] = {
    "int": "integer",
    "integer": "integer",
    "number": "float",
    "num": "float",
    "float": "float",
    "array": "isarray",
    "cardNumber": "ccnum",
    "date": "date",
    "email": "email",
    "url": "url",
    "ip": "ip",
    "domain": "domain",
    "string": "string",
    "boolean": "boolean",
    "bool": "boolean",
}

NAMED_FILTERS: dict[str, Callable[[Any], Any]] = {
    "trim": lambda v: v.strip() if isinstance(v, str) else v,
    "lower": lambda v: v.lower() if isinstance(v, str) else v,
    "upper": lambda v: v.upper() if isinstance(v, str) else v,
    "int": int,
    "float": float,
    "str": str,
}

PASSTHROUGH_FIELDS = ("test_data",)


@dataclass
class ValidatedParams:
    params: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"params": self.params, "meta": self.meta}


# =============================================================================
# FETCH
# =============================================================================


def read_payload(ctx: RequestContext) -> Any:
    """Raw payload in source order: body, stdin (CLI), query (GET) or form (POST)."""
    request = ctx.request
    payload: Any = request.body.strip() if isinstance(request.body, str) else request.body

    if not payload and ctx.cli:
        payload = request.read_stdin()

    if not payload and ctx.method == "GET" and request.query:
        payload = dict(request.query)

    if not payload and ctx.method == "POST" and request.form:
        payload = dict(request.form)

    return payload or {}


def decode_payload(payload: Any) -> Any:
    """Decode a string payload as JSON.

    Raises:
        MalformedParamsError: the string is not JSON.
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")

    if not isinstance(payload, str):
        return payload

    text = payload.strip()
    if not text:
        return {}
    if text[0] not in "[{":
        raise MalformedParamsError("Params payload is not JSON")
    try:
        return json.loads(text)
    except ValueError as e:
        raise MalformedParamsError("Params payload is not valid JSON", cause=e) from e


def fetch_params(
    ctx: RequestContext,
    explicit: Any = None,
    *,
    routes: RouteRegistry | None = None,
    hooks: HookRegistry | None = None,
) -> dict[str, Any]:
    """Collect, decode and filter the request's params.

    Raises:
        MalformedParamsError: payload is not JSON, or the filtered result is
            not a mapping.
    """
    if explicit is not None:
        data = decode_payload(explicit)
    else:
        data = decode_payload(read_payload(ctx))
        if routes is not None and ctx.route is not None and ctx.path:
            captures = routes.captures(ctx.route, ctx.path)
            if captures:
                if not isinstance(data, dict):
                    raise MalformedParamsError("Params must be a JSON object")
                data = {**data, **captures}

    if data and hooks is not None:
        data = hooks.run_filter("params", data, ctx.meta)

    if data and not isinstance(data, Mapping):
        raise MalformedParamsError("Params must be a JSON object")

    return dict(data) if data else {}


# =============================================================================
# VALIDATE
# =============================================================================


def iter_schema(schema: Any) -> list[tuple[str, dict[str, Any]]]:
    """Normalize a route schema to ``(field, settings)`` pairs."""
    if isinstance(schema, Mapping):
        return [(str(key), dict(settings or {})) for key, settings in schema.items()]

    fields: list[tuple[str, dict[str, Any]]] = []
    for entry in schema or []:
        if isinstance(entry, str) and entry:
            fields.append((entry, {}))
        elif isinstance(entry, Mapping):
            for key, settings in entry.items():
                fields.append((str(key), dict(settings or {})))
    return fields


def is_required(settings: Mapping[str, Any], params: Mapping[str, Any]) -> bool:
    """``required`` may be a bool or a ``{companion: expected}`` all-of predicate.

    Companion values must match in type as well as value, so ``{"flag": True}``
    does not fire on ``flag=1``.
    """
    required = settings.get("required")
    if not required:
        return False
    if isinstance(required, Mapping):
        return all(
            key in params and type(params[key]) is type(expected) and params[key] == expected
            for key, expected in required.items()
        )
    return True


def _resolve_callable(ref: Any, controllers: ControllerRegistry | None, named: Mapping[str, Callable] | None = None):
    if named and isinstance(ref, str) and ref in named:
        return named[ref]
    if callable(ref) and not isinstance(ref, str):
        return ref
    if controllers is not None:
        return controllers.resolve(ref)
    raise TypeError(f"Cannot resolve callable: {ref!r}")


def apply_rules(
    validator: Validator,
    settings: Mapping[str, Any],
    required: bool,
    controllers: ControllerRegistry | None = None,
) -> None:
    """Queue the rules declared in ``settings`` on ``validator``.

    Order: required, type, length and bounds, pattern and character class,
    domain checks, callback, filter.
    """
    messages = {str(k).lower(): v for k, v in (settings.get("messages") or {}).items()}

    def msg(*names: str) -> str | None:
        for name in names:
            if messages.get(name):
                return messages[name]
        return None

    if required:
        validator.required(msg("required"))

    kind = settings.get("type")
    if kind == "password":
        validator.string(msg("string"))
        validator.min_length(10, msg("minlength"))
        validator.has_symbols(1, msg("hassymbols"))
        validator.has_numbers(1, msg("hasnumbers"))
        validator.has_letters(1, msg("hasletters"))
        validator.has_lowercase(1, msg("haslowercase"))
        validator.has_uppercase(1, msg("hasuppercase"))
    elif kind in TYPE_RULES:
        rule = TYPE_RULES[kind]
        getattr(validator, rule)(msg(rule, str(kind).lower(), "array" if rule == "isarray" else rule))
    elif kind is not None:
        log.warning("params.unknown_type", type=kind)

    if settings.get("minLength") is not None:
        validator.min_length(settings["minLength"], msg("minlength"))
    if settings.get("maxLength") is not None:
        validator.max_length(settings["maxLength"], msg("maxlength"))
    if settings.get("length") is not None:
        validator.length(settings["length"], msg("length"))
    if settings.get("min") is not None:
        validator.min(settings["min"], True, msg("min"))
    if settings.get("max") is not None:
        validator.max(settings["max"], True, msg("max"))
    if settings.get("between") is not None:
        low, high = settings["between"][0], settings["between"][1]
        validator.between(low, high, True, msg("between"))
    if settings.get("betweenLength") is not None:
        low, high = settings["betweenLength"][0], settings["betweenLength"][1]
        validator.between_length(low, high, msg("betweenlength"))

    if settings.get("matches") is not None:
        validator.matches(settings["matches"], msg("matches"))
    if settings.get("notMatches") is not None:
        validator.not_matches(settings["notMatches"], msg("notmatches"))
    if settings.get("startsWith") is not None:
        validator.starts_with(settings["startsWith"], msg("startswith"))
    if settings.get("notStartsWith") is not None:
        validator.not_starts_with(settings["notStartsWith"], msg("notstartswith"))
    if settings.get("endsWith") is not None:
        validator.ends_with(settings["endsWith"], msg("endswith"))
    if settings.get("notEndsWith") is not None:
        validator.not_ends_with(settings["notEndsWith"], msg("notendswith"))

    if settings.get("numbersOnly"):
        validator.digits(msg("digits"))
    if settings.get("minDate") is not None:
        validator.min_date(settings["minDate"], msg("mindate"))
    if settings.get("maxDate") is not None:
        validator.max_date(settings["maxDate"], msg("maxdate"))
    if settings.get("in") is not None:
        validator.in_(settings["in"], msg("in"))
    if settings.get("has") is not None:
        validator.has(settings["has"], msg("has"))
    if settings.get("hasSymbols") is not None:
        validator.has_symbols(settings["hasSymbols"], msg("hassymbols"))
    if settings.get("hasNumbers") is not None:
        validator.has_numbers(settings["hasNumbers"], msg("hasnumbers"))
    if settings.get("hasLetters") is not None:
        validator.has_letters(settings["hasLetters"], msg("hasletters"))
    if settings.get("hasLowercase") is not None:
        validator.has_lowercase(settings["hasLowercase"], msg("haslowercase"))
    if settings.get("hasUppercase") is not None:
        validator.has_uppercase(settings["hasUppercase"], msg("hasuppercase"))

    if settings.get("callback") is not None:
        validator.callback(_resolve_callable(settings["callback"], controllers), msg("callback"))
    if settings.get("filter") is not None:
        validator.filter(_resolve_callable(settings["filter"], controllers, NAMED_FILTERS))


def clean_value(value: Any, settings: Mapping[str, Any]) -> Any:
    """Apply ``trim`` and ``unique`` to a validated value."""
    if isinstance(value, (list, tuple)):
        items = list(value)
        if settings.get("trim"):
            items = [item.strip() if isinstance(item, str) else item for item in items]
            items = [item for item in items if item not in ("", None)]
        if settings.get("unique"):
            unique: list[Any] = []
            for item in items:
                if item not in unique:
                    unique.append(item)
            items = unique
        return items

    if settings.get("trim") and isinstance(value, str):
        return value.strip()
    return value


def validate_params(
    ctx: RequestContext,
    *,
    hooks: HookRegistry | None = None,
    controllers: ControllerRegistry | None = None,
) -> ValidatedParams:
    """Validate ``ctx.params`` against ``ctx.route.params``.

    Raises:
        ValidationFailedError: one or more fields failed; carries every
            field's messages.
    """
    params = dict(ctx.params or {})
    route = ctx.route
    schema = route.params if route is not None else None

    if not schema:
        result = ValidatedParams(params=params, meta={})
    else:
        result = ValidatedParams()
        for name in PASSTHROUGH_FIELDS:
            if params.get(name):
                result.params[name] = params[name]

        validator = Validator(params)
        trim_all = bool(route.params_trim)

        for key, settings in iter_schema(schema):
            if "trim" not in settings and trim_all:
                settings["trim"] = True

            if params.get(key) is None and settings.get("default") is not None:
                params[key] = settings["default"]

            required = is_required(settings, params)
            if not required and params.get(key) is None:
                continue

            validator.set_data(params)
            apply_rules(validator, settings, required, controllers)
            value = validator.validate(key)

            if settings.get("validateOnly") or key in validator.errors:
                continue

            value = clean_value(value, settings)
            target = result.meta if settings.get("meta") else result.params
            target[key] = value

        if validator.has_errors():
            log.info("params.validation_failed", fields=list(validator.errors))
            raise ValidationFailedError(validator.errors)

    if hooks is not None:
        filtered = hooks.run_filter("validate_params", result.to_dict(), ctx.meta)
        if isinstance(filtered, ValidatedParams):
            return filtered
        if not isinstance(filtered, Mapping):
            raise MalformedParamsError("validate_params filter must return params and meta")
        result = ValidatedParams(
            params=dict(filtered.get("params") or {}),
            meta=dict(filtered.get("meta") or {}),
        )

    return result


__all__ = [
    "NAMED_FILTERS",
    "TYPE_RULES",
    "ValidatedParams",
    "apply_rules",
    "clean_value",
    "decode_payload",
    "fetch_params",
    "is_required",
    "iter_schema",
    "read_payload",
    "validate_params",
]
