"""
Programmatic entry point and the argument bundle.

``run(config, ...)`` is the one-call way to serve a request.  ``config`` is
anything :func:`~spry.core.settings.load_config` accepts, or an *argument
bundle*: base64-encoded JSON carrying every ``run`` argument at once, used
to hand a complete invocation to a background process or a cron entry::

    bundle = encode_bundle(config="app.yaml", path="/jobs/cleanup/", cron=True)
    run(bundle)

A string is treated as a bundle only when it is not an existing file, has
no config-file suffix and contains none of ``"``, ``[`` or ``{``.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from spry.core.errors import ConfigMalformedError
from spry.core.settings import CONFIG_SUFFIXES

if TYPE_CHECKING:
    from spry.framework.app import Spry
    from spry.framework.context import Request
    from spry.framework.responses import Output

_JSON_MARKERS = re.compile(r'["\[{]')


@dataclass
class RunBundle:
    config: Any = None
    cron: bool = False
    controller: Any = None
    params: Any = None
    path: str | None = None
    process: Any = None
    meta: dict[str, Any] | None = None


def looks_like_bundle(value: str) -> bool:
    text = value.strip()
    if not text or _JSON_MARKERS.search(text) or text.lower().endswith(CONFIG_SUFFIXES):
        return False
    try:
        return not Path(text).exists()
    except OSError:
        return True


def decode_bundle(value: str) -> RunBundle | None:
    """Decode an argument bundle; None when ``value`` is not one.

    Raises:
        ConfigMalformedError: ``value`` looks like a bundle but does not
            decode to a JSON object.
    """
    if not looks_like_bundle(value):
        return None

    try:
        decoded = json.loads(base64.b64decode(value.strip(), validate=True))
    except (binascii.Error, ValueError) as e:
        raise ConfigMalformedError("Argument bundle could not be decoded", cause=e) from e

    if not isinstance(decoded, Mapping) or not decoded:
        raise ConfigMalformedError("Argument bundle must be a JSON object")

    meta = decoded.get("meta")
    return RunBundle(
        config=decoded.get("config"),
        cron=bool(decoded.get("cron", False)),
        controller=decoded.get("controller"),
        params=decoded.get("params"),
        path=decoded.get("path"),
        process=decoded.get("process"),
        meta=dict(meta) if isinstance(meta, Mapping) else None,
    )


def encode_bundle(**arguments: Any) -> str:
    """Encode ``run`` arguments (JSON-serializable values only) as a bundle."""
    bundle = RunBundle(**arguments)
    payload = {key: value for key, value in asdict(bundle).items() if value not in (None, False)}
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def run(
    config: Any,
    controller: Any = None,
    params: Any = None,
    path: str | None = None,
    process: Any = None,
    meta: Mapping[str, Any] | None = None,
    request: Request | None = None,
    *,
    app: Spry | None = None,
) -> Output:
    """Serve one request with ``app`` (a new :class:`Spry` by default)."""
    from spry.framework.app import Spry

    app = app or Spry()
    return app.run(config, controller, params, path, process, meta, request)


__all__ = ["RunBundle", "decode_bundle", "encode_bundle", "looks_like_bundle", "run"]
