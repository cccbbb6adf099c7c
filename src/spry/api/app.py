"""
FastAPI application factory.

``create_app()`` wraps one :class:`~spry.framework.app.Spry` instance in a
FastAPI app whose only route is a catch-all.  Routing, validation and CORS
headers are Spry's job; this layer translates transport objects only.

Manifesto:
    The adapter must stay thin.  A request served over HTTP produces the
    same envelope as the same request made with ``Spry.run`` directly.

Tags:
    spry, api, app-factory, FastAPI

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from urllib.parse import parse_qsl

from fastapi import FastAPI
from fastapi import Request as HTTPRequest
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from spry.api.middleware.errors import unhandled_exception_handler
from spry.api.settings import SpryAPISettings
from spry.core.logging import get_logger
from spry.framework.app import Spry
from spry.framework.context import Request

log = get_logger(__name__)

HTTP_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup / shutdown logging."""
    spry: Spry = app.state.spry
    log.info("spry.api_starting", version=spry.get_version())
    yield
    log.info("spry.api_stopping")


async def to_spry_request(request: HTTPRequest) -> Request:
    """Translate a starlette request into a Spry :class:`Request`."""
    raw = (await request.body()).decode("utf-8", errors="replace")
    form: dict[str, str] = {}

    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPE):
        form = dict(parse_qsl(raw, keep_blank_values=True))
        raw = ""

    uri = request.url.path
    if request.url.query:
        uri = f"{uri}?{request.url.query}"

    return Request(
        method=request.method,
        uri=uri,
        body=raw,
        query=dict(request.query_params),
        form=form,
        headers=dict(request.headers),
    )


def create_app(spry: Spry | None = None, *, settings: SpryAPISettings | None = None) -> FastAPI:
    """Build a FastAPI application serving ``spry``.

    Parameters
    ----------
    spry : Spry | None
        The application to serve.  When ``None`` one is built from
        ``settings.config``.
    settings : SpryAPISettings | None
        Override settings (useful for testing).
    """
    settings = settings or SpryAPISettings()
    spry = spry or Spry(settings.config)

    app = FastAPI(
        title=settings.title,
        version=spry.get_version(),
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.state.spry = spry

    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.api_route("/{full_path:path}", methods=HTTP_METHODS, include_in_schema=False)
    async def dispatch(request: HTTPRequest, full_path: str) -> Response:
        spry_request = await to_spry_request(request)
        output = await run_in_threadpool(spry.run, request=spry_request)
        return Response(
            content=output.body,
            status_code=output.status_code,
            headers=output.headers,
            media_type="application/json",
        )

    return app


__all__ = ["create_app", "to_spry_request"]
