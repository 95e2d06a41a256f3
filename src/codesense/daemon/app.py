"""
FastAPI application for the Codesense daemon.

Routes:
    /ping   any method  -> 200 "pong"
    /       POST        -> request document in the body
    /       GET         -> request document in the ``doc`` query parameter
    other               -> 404

Request documents are JSON; engine results are returned as JSON, errors as
plain text with status 400.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from .. import __version__
from ..engine import EngineError
from .bridge import EngineBridge
from .lifecycle import IdleLifecycleManager

logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


def _bad_request(message: str) -> PlainTextResponse:
    return PlainTextResponse(message, status_code=status.HTTP_400_BAD_REQUEST)


async def handle_document(bridge: EngineBridge, text: str) -> Response:
    """Parse a request document and run it through the engine."""
    try:
        document = json.loads(text)
    except ValueError as e:
        return _bad_request(f"JSON parse error: {e}")

    try:
        result = await bridge.request(document)
    except EngineError as e:
        return _bad_request(str(e))

    return JSONResponse(result)


def create_app(
    bridge: EngineBridge, lifecycle: Optional[IdleLifecycleManager] = None
) -> FastAPI:
    """
    Create and configure the daemon's FastAPI application.

    Args:
        bridge: Engine bridge answering request documents
        lifecycle: Idle manager notified of every inbound request

    Returns:
        Configured FastAPI app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await bridge.warm_up()
        yield

    app = FastAPI(
        title="Codesense Daemon",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.bridge = bridge
    app.state.lifecycle = lifecycle

    @app.middleware("http")
    async def record_activity(request: Request, call_next):
        if lifecycle is not None:
            lifecycle.touch()
        return await call_next(request)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error serving {request.url.path}: {exc}")
        return PlainTextResponse(
            f"Internal error: {exc}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.api_route("/ping", methods=ALL_METHODS)
    async def ping():
        return PlainTextResponse("pong")

    @app.post("/")
    async def post_document(request: Request):
        body = await request.body()
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as e:
            return _bad_request(f"JSON parse error: {e}")
        return await handle_document(bridge, text)

    @app.get("/")
    async def get_document(request: Request):
        doc = request.query_params.get("doc")
        if doc is None:
            return _bad_request("Missing query parameter 'doc'")
        return await handle_document(bridge, doc)

    @app.api_route("/{path:path}", methods=ALL_METHODS)
    async def not_found(request: Request, path: str):
        return PlainTextResponse(
            f"No handler for {request.method} {request.url.path}",
            status_code=status.HTTP_404_NOT_FOUND,
        )

    return app
