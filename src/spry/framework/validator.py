"""
Fluent field validator.

A stateful rule chain: rules are queued with fluent calls, then
``validate(key)`` checks the value of ``key`` in the current data set,
records failures in ``errors`` and returns the (possibly coerced and
filtered) value.  One instance is reused across fields with ``set_data``,
which clears the queued rules but keeps accumulated errors.

Example::

    v = Validator({"age": "42", "email": "a@b.co"})
    age = v.required().integer().min(18).validate("age")     # -> 42
    v.set_data({"email": "nope"})
    v.required().email().validate("email")
    v.errors   # {"email": ["Email must be a valid email address."]}

Type rules coerce: ``integer`` turns ``"42"`` into ``42``, ``float`` turns
``"1.5"`` into ``1.5`` and ``boolean`` understands ``"true"/"false"/"1"/"0"``.
Rules other than ``required`` are skipped for empty values, so optional
fields only fail on content that is actually present.
"""

from __future__ import annotations

import ipaddress
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any
from urllib.parse import urlparse

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
DOMAIN_RE = re.compile(r"^(?=.{1,253}$)(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.(?!-)[A-Za-z0-9-]{1,63}(?<!-))+$")
INT_RE = re.compile(r"^[+-]?\d+$")
FLOAT_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
SYMBOL_RE = re.compile(r"[^A-Za-z0-9\s]")

TRUE_STRINGS = {"true", "1", "yes", "on"}
FALSE_STRINGS = {"false", "0", "no", "off"}

DEFAULT_MESSAGES: dict[str, str] = {
    "required": "{field} is required.",
    "integer": "{field} must be an integer.",
    "float": "{field} must be a number.",
    "array": "{field} must be a list.",
    "string": "{field} must be a string.",
    "boolean": "{field} must be true or false.",
    "email": "{field} must be a valid email address.",
    "url": "{field} must be a valid URL.",
    "ip": "{field} must be a valid IP address.",
    "domain": "{field} must be a valid domain.",
    "date": "{field} must be a valid date.",
    "ccnum": "{field} must be a valid card number.",
    "minlength": "{field} must be at least {arg} characters.",
    "maxlength": "{field} must be at most {arg} characters.",
    "length": "{field} must be exactly {arg} characters.",
    "betweenlength": "{field} must be between {arg[0]} and {arg[1]} characters.",
    "min": "{field} must be at least {arg}.",
    "max": "{field} must be at most {arg}.",
    "between": "{field} must be between {arg[0]} and {arg[1]}.",
    "matches": "{field} must match {arg}.",
    "notmatches": "{field} must not match {arg}.",
    "startswith": "{field} must start with {arg}.",
    "notstartswith": "{field} must not start with {arg}.",
    "endswith": "{field} must end with {arg}.",
    "notendswith": "{field} must not end with {arg}.",
    "digits": "{field} must contain only digits.",
    "mindate": "{field} must be on or after {arg}.",
    "maxdate": "{field} must be on or before {arg}.",
    "in": "{field} has an invalid value.",
    "has": "{field} must contain {arg}.",
    "hassymbols": "{field} must contain at least {arg} symbol(s).",
    "hasnumbers": "{field} must contain at least {arg} number(s).",
    "hasletters": "{field} must contain at least {arg} letter(s).",
    "haslowercase": "{field} must contain at least {arg} lowercase letter(s).",
    "hasuppercase": "{field} must contain at least {arg} uppercase letter(s).",
    "callback": "{field} is invalid.",
}

Check = Callable[[Any], "tuple[bool, Any]"]


@dataclass
class Rule:
    name: str
    check: Check
    message: str | None = None
    arg: Any = None

    def render(self, label: str) -> str:
        template = self.message or DEFAULT_MESSAGES.get(self.name, "{field} is invalid.")
        try:
            return template.format(field=label, arg=self.arg)
        except (IndexError, KeyError, AttributeError, TypeError):
            return template


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def _predicate(fn: Callable[[Any], bool]) -> Check:
    def check(value: Any) -> tuple[bool, Any]:
        try:
            return bool(fn(value)), value
        except (TypeError, ValueError):
            return False, value

    return check


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError("bool is not a number")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str) and FLOAT_RE.match(value.strip()):
        return float(value)
    raise ValueError(f"not a number: {value!r}")


def _size(value: Any) -> int:
    if isinstance(value, (list, tuple, dict, set)):
        return len(value)
    return len(str(value))


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return date.fromisoformat(text[:10])


def _luhn(value: Any) -> bool:
    digits = re.sub(r"[\s-]", "", str(value))
    if not digits.isdigit() or not 12 <= len(digits) <= 19:
        return False
    total = 0
    for i, ch in enumerate(reversed(digits)):
        n = int(ch)
        if i % 2:
            n *= 2
            if n > 9:
                n -= 9
        total += n
    return total % 10 == 0


class Validator:
    """Stateful, fluent rule chain. See module docstring."""

    def __init__(self, data: dict[str, Any] | None = None):
        self._data: dict[str, Any] = dict(data or {})
        self._rules: list[Rule] = []
        self._filters: list[Callable[[Any], Any]] = []
        self.errors: dict[str, list[str]] = {}

    # ── State ────────────────────────────────────────────────────────────

    @property
    def data(self) -> dict[str, Any]:
        return self._data

    def set_data(self, data: dict[str, Any] | None) -> Validator:
        """Replace the data set and clear queued rules; errors are kept."""
        self._data = dict(data or {})
        self._rules = []
        self._filters = []
        return self

    def has_errors(self) -> bool:
        return bool(self.errors)

    def reset_errors(self) -> None:
        self.errors = {}

    def _add(self, name: str, check: Check, message: str | None = None, arg: Any = None) -> Validator:
        self._rules.append(Rule(name=name, check=check, message=message, arg=arg))
        return self

    # ── Presence ─────────────────────────────────────────────────────────

    def required(self, message: str | None = None) -> Validator:
        return self._add("required", _predicate(lambda v: not is_empty(v)), message)

    # ── Types (coercing) ─────────────────────────────────────────────────

    def integer(self, message: str | None = None) -> Validator:
        def check(value: Any) -> tuple[bool, Any]:
            if isinstance(value, bool):
                return False, value
            if isinstance(value, int):
                return True, value
            if isinstance(value, float) and value.is_integer():
                return True, int(value)
            if isinstance(value, str) and INT_RE.match(value.strip()):
                return True, int(value.strip())
            return False, value

        return self._add("integer", check, message)

    def float(self, message: str | None = None) -> Validator:
        def check(value: Any) -> tuple[bool, Any]:
            try:
                return True, float(_to_number(value))
            except (TypeError, ValueError):
                return False, value

        return self._add("float", check, message)

    def isarray(self, message: str | None = None) -> Validator:
        def check(value: Any) -> tuple[bool, Any]:
            if isinstance(value, tuple):
                return True, list(value)
            return isinstance(value, (list, dict)), value

        return self._add("array", check, message)

    def string(self, message: str | None = None) -> Validator:
        return self._add("string", _predicate(lambda v: isinstance(v, str)), message)

    def boolean(self, message: str | None = None) -> Validator:
        def check(value: Any) -> tuple[bool, Any]:
            if isinstance(value, bool):
                return True, value
            if isinstance(value, int) and value in (0, 1):
                return True, bool(value)
            if isinstance(value, str):
                lowered = value.strip().lower()
                if lowered in TRUE_STRINGS:
                    return True, True
                if lowered in FALSE_STRINGS:
                    return True, False
            return False, value

        return self._add("boolean", check, message)

    def email(self, message: str | None = None) -> Validator:
        return self._add("email", _predicate(lambda v: bool(EMAIL_RE.match(str(v)))), message)

    def url(self, message: str | None = None) -> Validator:
        def valid(value: Any) -> bool:
            parsed = urlparse(str(value))
            return parsed.scheme in ("http", "https", "ftp") and bool(parsed.netloc)

        return self._add("url", _predicate(valid), message)

    def ip(self, message: str | None = None) -> Validator:
        return self._add("ip", _predicate(lambda v: ipaddress.ip_address(str(v)) is not None), message)

    def domain(self, message: str | None = None) -> Validator:
        return self._add("domain", _predicate(lambda v: bool(DOMAIN_RE.match(str(v)))), message)

    def date(self, message: str | None = None) -> Validator:
        return self._add("date", _predicate(lambda v: _to_date(v) is not None), message)

    def ccnum(self, message: str | None = None) -> Validator:
        return self._add("ccnum", _predicate(_luhn), message)

    # ── Length and bounds ────────────────────────────────────────────────

    def min_length(self, length: int, message: str | None = None) -> Validator:
        return self._add("minlength", _predicate(lambda v: _size(v) >= length), message, length)

    def max_length(self, length: int, message: str | None = None) -> Validator:
        return self._add("maxlength", _predicate(lambda v: _size(v) <= length), message, length)

    def length(self, length: int, message: str | None = None) -> Validator:
        return self._add("length", _predicate(lambda v: _size(v) == length), message, length)

    def between_length(self, low: int, high: int, message: str | None = None) -> Validator:
        return self._add("betweenlength", _predicate(lambda v: low <= _size(v) <= high), message, (low, high))

    def min(self, limit: float, inclusive: bool = True, message: str | None = None) -> Validator:
        def valid(value: Any) -> bool:
            number = _to_number(value)
            return number >= limit if inclusive else number > limit

        return self._add("min", _predicate(valid), message, limit)

    def max(self, limit: float, inclusive: bool = True, message: str | None = None) -> Validator:
        def valid(value: Any) -> bool:
            number = _to_number(value)
            return number <= limit if inclusive else number < limit

        return self._add("max", _predicate(valid), message, limit)

    def between(self, low: float, high: float, inclusive: bool = True, message: str | None = None) -> Validator:
        def valid(value: Any) -> bool:
            number = _to_number(value)
            return low <= number <= high if inclusive else low < number < high

        return self._add("between", _predicate(valid), message, (low, high))

    # ── Patterns and character classes ───────────────────────────────────

    def matches(self, other: str, message: str | None = None) -> Validator:
        """Value must equal the value of the ``other`` field."""
        return self._add("matches", _predicate(lambda v: v == self._data.get(other)), message, other)

    def not_matches(self, other: str, message: str | None = None) -> Validator:
        return self._add("notmatches", _predicate(lambda v: v != self._data.get(other)), message, other)

    def starts_with(self, prefix: str, message: str | None = None) -> Validator:
        return self._add("startswith", _predicate(lambda v: str(v).startswith(prefix)), message, prefix)

    def not_starts_with(self, prefix: str, message: str | None = None) -> Validator:
        return self._add("notstartswith", _predicate(lambda v: not str(v).startswith(prefix)), message, prefix)

    def ends_with(self, suffix: str, message: str | None = None) -> Validator:
        return self._add("endswith", _predicate(lambda v: str(v).endswith(suffix)), message, suffix)

    def not_ends_with(self, suffix: str, message: str | None = None) -> Validator:
        return self._add("notendswith", _predicate(lambda v: not str(v).endswith(suffix)), message, suffix)

    def digits(self, message: str | None = None) -> Validator:
        return self._add("digits", _predicate(lambda v: str(v).isdigit()), message)

    def _count(self, name: str, pattern: str, count: int, message: str | None) -> Validator:
        compiled = re.compile(pattern)
        return self._add(name, _predicate(lambda v: len(compiled.findall(str(v))) >= count), message, count)

    def has_symbols(self, count: int = 1, message: str | None = None) -> Validator:
        return self._count("hassymbols", SYMBOL_RE.pattern, count, message)

    def has_numbers(self, count: int = 1, message: str | None = None) -> Validator:
        return self._count("hasnumbers", r"[0-9]", count, message)

    def has_letters(self, count: int = 1, message: str | None = None) -> Validator:
        return self._count("hasletters", r"[A-Za-z]", count, message)

    def has_lowercase(self, count: int = 1, message: str | None = None) -> Validator:
        return self._count("haslowercase", r"[a-z]", count, message)

    def has_uppercase(self, count: int = 1, message: str | None = None) -> Validator:
        return self._count("hasuppercase", r"[A-Z]", count, message)

    # ── Domain checks ────────────────────────────────────────────────────

    def min_date(self, limit: Any, message: str | None = None) -> Validator:
        return self._add("mindate", _predicate(lambda v: _to_date(v) >= _to_date(limit)), message, limit)

    def max_date(self, limit: Any, message: str | None = None) -> Validator:
        return self._add("maxdate", _predicate(lambda v: _to_date(v) <= _to_date(limit)), message, limit)

    def in_(self, choices: Iterable[Any], message: str | None = None) -> Validator:
        allowed = list(choices)

        def valid(value: Any) -> bool:
            if isinstance(value, (list, tuple)):
                return all(item in allowed for item in value)
            return value in allowed

        return self._add("in", _predicate(valid), message, allowed)

    def has(self, needles: Any, message: str | None = None) -> Validator:
        """List values must contain every needle; strings must contain the substring(s)."""
        wanted = needles if isinstance(needles, (list, tuple)) else [needles]

        def valid(value: Any) -> bool:
            if isinstance(value, (list, tuple, set)):
                return all(item in value for item in wanted)
            return all(str(item) in str(value) for item in wanted)

        return self._add("has", _predicate(valid), message, needles)

    # ── Custom ───────────────────────────────────────────────────────────

    def callback(self, fn: Callable[[Any], Any], message: str | None = None) -> Validator:
        return self._add("callback", _predicate(fn), message)

    def filter(self, fn: Callable[[Any], Any]) -> Validator:
        self._filters.append(fn)
        return self

    # ── Run ──────────────────────────────────────────────────────────────

    def validate(self, key: str, label: str | None = None) -> Any:
        """Run queued rules against ``data[key]`` and return the final value.

        The first failing rule records an error for ``key`` and stops the
        chain; filters only run when every rule passed. A filter that
        rejects the value (``TypeError``/``ValueError``) records the
        ``callback`` message instead of raising.
        """
        label = label or key.replace("_", " ").title()
        value = self._data.get(key)
        failed = False

        for rule in self._rules:
            if rule.name != "required" and is_empty(value):
                continue
            ok, value = rule.check(value)
            if not ok:
                self.errors.setdefault(key, []).append(rule.render(label))
                failed = True
                break

        if not failed:
            for fn in self._filters:
                try:
                    value = fn(value)
                except (TypeError, ValueError):
                    rule = Rule(name="callback", check=_predicate(fn))
                    self.errors.setdefault(key, []).append(rule.render(label))
                    break

        self._rules = []
        self._filters = []
        return value


__all__ = ["DEFAULT_MESSAGES", "Rule", "Validator", "is_empty"]
