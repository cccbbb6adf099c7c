"""
Error handling for the HTTP adapter.

Spry reports every framework failure inside its own envelope, so the only
errors that reach FastAPI are unexpected exceptions raised by controllers
or hooks.  Those are rendered in the same envelope shape with the core
"unknown error" code so clients only ever parse one format.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from spry.core.logging import get_logger
from spry.framework.responses import ResponseCodeTable, build_response

log = get_logger(__name__)

_codes = ResponseCodeTable()


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions; returns 500 with an error envelope."""
    log.exception("api.unhandled_exception", path=request.url.path, error=str(exc))

    debug = request.app.state.settings.debug
    envelope = build_response(
        _codes,
        None,
        0,
        "error",
        messages=[f"{type(exc).__name__}: {exc}"] if debug else None,
    )
    return JSONResponse(
        status_code=500,
        content={"method": request.method, **envelope.to_dict()},
    )
