"""
Response codes and the JSON envelope.

Every response Spry emits is an :class:`Envelope`::

    {
        "status":   "success" | "error",
        "code":     "{group}-{prefix}{code:02}",      e.g. "0-200", "5-411"
        "messages": [code message, *additional messages],
        "meta":     {...},
        "hash":     envelope_hash(code, body),
        "body":     <controller data>,
    }

The prefix digit encodes the per-code status::

    info → 1   success → 2   redirect → 3   warning → 4   error → 5

and the envelope ``status`` collapses it: 1-3 are ``success``, 4-5 are
``error``.

Code table
----------
``group → code → entry`` where an entry is one of:

- ``{"success": "Saved", "error": {"en": "Failed", "es": "Falló"}}``
- ``{"en": "Hello", "es": "Hola"}``
- ``"Plain message"``

Group 0 holds the framework's own codes (:data:`CORE_RESPONSE_CODES`).
Components register their own groups; overwriting an existing entry is
allowed but reported as a :class:`CodeConflict`.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from typing import Any

from spry.core.hashing import envelope_hash
from spry.core.logging import get_logger

log = get_logger(__name__)

CODE_PREFIXES: dict[str, int] = {
    "info": 1,
    "success": 2,
    "redirect": 3,
    "warning": 4,
    "error": 5,
}
STATUSES = tuple(CODE_PREFIXES)
UNKNOWN_MESSAGE = "Unkown Response Code"
DEFAULT_LANG = "en"

CORE_RESPONSE_CODES: dict[int, Any] = {
    0: {
        "info": {"en": "Empty Results."},
        "success": {"en": "Success!"},
        "warning": {"en": "Unknown Results."},
        "error": {"en": "Error: Unknown Error."},
    },
    1: {"error": {"en": "Error: Missing Config File"}},
    2: {"error": {"en": "Error: Missing Salt in Config File"}},
    3: {"error": {"en": "Error: Unknown configuration error on run."}},
    10: {
        "error": {
            "en": "Error: Response Output is Malformed. Check Controller or Routes for Headers already sent"
        }
    },
    11: {"warning": {"en": "Error: Route Not Found."}},
    12: {"warning": {"en": "Error: Class Not Found."}},
    13: {"warning": {"en": "Error: Class Method Not Found."}},
    14: {"error": {"en": "Error: Returned Data is not in JSON format."}},
    15: {"error": {"en": "Error: Class Method is not Callable. Make sure it is Public."}},
    16: {"warning": {"en": "Error: Controller Not Found."}},
    17: {"warning": {"en": "Error: Method not allowed by Route."}},
    20: {"warning": {"en": "Error: Field did not Validate."}},
    30: {
        "success": {"en": "Database Migration Ran Successfully"},
        "error": {"en": "Error: Database Migrate had an Error"},
    },
    31: {"error": {"en": "Error: Database Connect Error."}},
    32: {"error": {"en": "Error: Missing Database Credentials from config."}},
    33: {"error": {"en": "Error: Database Provider not found."}},
    40: {"error": {"en": "Error: Log Provider not found."}},
    50: {
        "success": {"en": "Test Passed Successfully."},
        "error": {"en": "Error: Test Failed."},
    },
    51: {"error": {"en": "Error: Retrieving Tests."}},
    52: {"error": {"en": "Error: No Tests Configured."}},
    53: {"error": {"en": "Error: No Test with that name Configured."}},
    54: {
        "success": {"en": "Remote Response Connected Successfully."},
        "warning": {"en": "Error: Remote Response Connection Failed"},
        "error": {"en": "Error: Remote Response Unknown Error"},
    },
    60: {"error": {"en": "Error: Background Process did not return Process ID."}},
    61: {"error": {"en": "Error: Background Process could not find autoload."}},
    62: {"error": {"en": "Error: Unknown response from Background Process."}},
    70: {"error": {"en": "Error: Rate Limit Exceeded."}},
    71: {"error": {"en": "Error: Rate Limit Key Not Found."}},
    72: {"error": {"en": "Error: Rate Limit Directory Not Created."}},
}


# ── Code table ──────────────────────────────────────────────────────────


@dataclass
class CodeConflict:
    """A registration that replaced an existing group or code."""

    group: int
    code: int | None
    source: str | None = None
    previous_source: str | None = None

    @property
    def message(self) -> str:
        owner = f" on component ({self.source})" if self.source else ""
        if self.code is None:
            return f"Group code ({self.group}){owner} is already in use by another component."
        return f"Code ({self.code}) in group ({self.group}){owner} is already in use."

    def to_dict(self) -> dict[str, Any]:
        return {**asdict(self), "message": self.message}


class ResponseCodeTable:
    """``group → code → entry`` lookup seeded with the core group."""

    def __init__(self, seed: bool = True):
        self._groups: dict[int, dict[int, Any]] = {}
        self._sources: dict[int, str | None] = {}
        self.conflicts: list[CodeConflict] = []
        if seed:
            self._groups[0] = copy.deepcopy(CORE_RESPONSE_CODES)
            self._sources[0] = "core"

    def __contains__(self, key: tuple[int, int]) -> bool:
        group, code = key
        return code in self._groups.get(group, {})

    def get(self, group: int, code: int) -> Any:
        return self._groups.get(group, {}).get(code)

    def groups(self) -> list[int]:
        return sorted(self._groups)

    def group(self, group: int) -> dict[int, Any]:
        return dict(self._groups.get(group, {}))

    def register_group(self, group: int, codes: Mapping[Any, Any], source: str | None = None) -> list[CodeConflict]:
        """Add (or extend) a group. Returns conflicts found while merging."""
        group = int(group)
        found: list[CodeConflict] = []

        if group in self._groups and self._sources.get(group) != source:
            found.append(CodeConflict(group, None, source, self._sources.get(group)))

        table = self._groups.setdefault(group, {})
        for code, entry in codes.items():
            code = int(code)
            if code in table:
                found.append(CodeConflict(group, code, source, self._sources.get(group)))
            table[code] = entry

        self._sources[group] = source
        for conflict in found:
            log.warning("response_codes.conflict", **conflict.to_dict())
        self.conflicts.extend(found)
        return found

    def register_codes(self, codes: Mapping[Any, Mapping[Any, Any]], source: str | None = None) -> list[CodeConflict]:
        """Register several groups at once (``{group: {code: entry}}``)."""
        found: list[CodeConflict] = []
        for group, group_codes in codes.items():
            found.extend(self.register_group(int(group), group_codes or {}, source))
        return found

    def to_dict(self) -> dict[int, dict[int, Any]]:
        return copy.deepcopy(self._groups)


# ── Envelope ────────────────────────────────────────────────────────────


@dataclass
class Envelope:
    status: str
    code: str
    messages: list[Any] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)
    hash: str = ""
    body: Any = None
    private_data: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Public fields only; ``private_data`` never leaves the process."""
        return {
            "status": self.status,
            "code": self.code,
            "messages": list(self.messages),
            "meta": dict(self.meta),
            "hash": self.hash,
            "body": self.body,
        }


@dataclass
class Output:
    """Final transport payload: headers plus serialized JSON body."""

    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""
    status_code: int = 200

    def json(self) -> Any:
        return json.loads(self.body) if self.body else None


def infer_status(data: Any) -> str:
    """Status for data returned without an explicit one."""
    if isinstance(data, (list, tuple, dict)) and not data:
        return "info"
    if data or (data == 0 and not isinstance(data, bool)) or data == "0":
        return "success"
    if data is None:
        return "warning"
    return "error"


def _normalize_status(status: Any) -> str | None:
    if isinstance(status, str) and status.strip().lower() in CODE_PREFIXES:
        return status.strip().lower()
    return None


def _to_int(value: Any) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _message_for(entry: Any, status: str, lang: str) -> str | None:
    if isinstance(entry, str):
        return entry
    if not isinstance(entry, Mapping):
        return None

    by_status = entry.get(status)
    if isinstance(by_status, Mapping) and isinstance(by_status.get(lang), str):
        return by_status[lang]
    if isinstance(by_status, str):
        return by_status
    if isinstance(entry.get(lang), str):
        return entry[lang]
    return None


def build_response(
    table: ResponseCodeTable,
    data: Any = None,
    code: Any = 0,
    status: str | None = None,
    meta: Mapping[str, Any] | None = None,
    messages: Any = None,
    lang: str = DEFAULT_LANG,
) -> Envelope:
    """Build an envelope for ``data`` under ``code``.

    ``code`` is an int (core group 0) or ``[group, code, status?]``.  An
    explicit status in the list wins over the ``status`` argument.
    """
    if isinstance(code, (list, tuple)):
        listed = _normalize_status(code[2]) if len(code) > 2 else None
        status = listed or status
        group = _to_int(code[0]) if code else 0
        number = _to_int(code[1]) if len(code) > 1 else None
    else:
        group = 0
        number = _to_int(code)

    status = _normalize_status(status) or infer_status(data)
    prefix = CODE_PREFIXES[status]
    response_status = "success" if prefix in (1, 2, 3) else "error"

    entry = table.get(group, number) if group is not None and number is not None else None

    if isinstance(entry, Mapping) and not entry.get(status):
        if entry.get(response_status):
            status = response_status
            prefix = CODE_PREFIXES[response_status]
        else:
            for candidate, candidate_prefix in CODE_PREFIXES.items():
                if entry.get(candidate):
                    status = candidate
                    prefix = candidate_prefix
                    response_status = "success" if prefix in (1, 2, 3) else "error"
                    break

    message = _message_for(entry, status, lang) if entry is not None else None
    if message is None and entry is not None and lang != DEFAULT_LANG:
        message = _message_for(entry, status, DEFAULT_LANG)

    if message is None:
        group, number, prefix = 0, 0, CODE_PREFIXES["error"]
        response_status = "error"
        message = UNKNOWN_MESSAGE

    response_code = f"{group}-{prefix}{number:02d}"

    extra = messages
    if isinstance(extra, (str, int, float)) and not isinstance(extra, bool):
        extra = [extra] if extra != "" else []

    envelope_messages: list[Any] = [message]
    if extra:
        envelope_messages.extend(extra)

    return Envelope(
        status=response_status,
        code=response_code,
        messages=envelope_messages,
        meta=dict(meta) if isinstance(meta, Mapping) else {},
        hash=envelope_hash(response_code, data),
        body=data,
    )


def is_envelope(data: Any) -> bool:
    """True when ``data`` already has the envelope shape."""
    if isinstance(data, Envelope):
        return True
    return isinstance(data, Mapping) and {"status", "code", "messages", "hash", "body"} <= set(data)


__all__ = [
    "CODE_PREFIXES",
    "CORE_RESPONSE_CODES",
    "CodeConflict",
    "Envelope",
    "Output",
    "ResponseCodeTable",
    "STATUSES",
    "UNKNOWN_MESSAGE",
    "build_response",
    "infer_status",
    "is_envelope",
]
