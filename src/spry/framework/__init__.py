"""
Spry framework - the request lifecycle.

- ``app``: the :class:`Spry` facade and :class:`Halt`
- ``context``: ``Request`` and per-request ``RequestContext``
- ``routing``: route registry and matcher
- ``params`` / ``validator``: parameter fetching and schema validation
- ``hooks``: hook and filter dispatcher
- ``controllers``: controller references, resolution and invocation
- ``responses``: response codes, envelopes and output
- ``components`` / ``providers``: extensions and lazy db/log providers
- ``runner``: module-level ``run`` and the argument bundle
"""

from spry.framework.app import Halt, Spry
from spry.framework.context import Request, RequestContext
from spry.framework.responses import Envelope, Output, ResponseCodeTable, build_response
from spry.framework.routing import Route, RouteRegistry, normalize_path
from spry.framework.runner import decode_bundle, encode_bundle, run
from spry.framework.validator import Validator

__all__ = [
    "Halt",
    "Spry",
    "Request",
    "RequestContext",
    "Envelope",
    "Output",
    "ResponseCodeTable",
    "build_response",
    "Route",
    "RouteRegistry",
    "normalize_path",
    "decode_bundle",
    "encode_bundle",
    "run",
    "Validator",
]
