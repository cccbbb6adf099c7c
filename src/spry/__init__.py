"""
Spry - a minimal request-lifecycle micro-framework.

One request in (HTTP, CLI or a direct call), one JSON envelope out::

    from spry import Spry, Request

    app = Spry("config.yaml")
    output = app.run(request=Request(method="GET", uri="/ping/"))
    print(output.body)
"""

__version__ = "1.1.0"

from spry.framework import (  # noqa: E402
    Envelope,
    Halt,
    Output,
    Request,
    RequestContext,
    Spry,
    Validator,
    encode_bundle,
    run,
)

__all__ = [
    "__version__",
    "Envelope",
    "Halt",
    "Output",
    "Request",
    "RequestContext",
    "Spry",
    "Validator",
    "encode_bundle",
    "run",
]
