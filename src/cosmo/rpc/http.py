"""
HTTP transport (FastAPI).

Routes, with <path> taken from Settings.http_path (default /mcp):
    GET     <path>   server metadata and tool list (not JSON-RPC)
    POST    <path>   one JSON-RPC envelope in the body
    OPTIONS <path>   CORS preflight
    GET     /health  liveness probe

POST always answers 200 with a JSON-RPC body, including parse errors;
notifications get 202 with an empty body.
"""

import logging

from fastapi import FastAPI, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cosmo import __version__
from cosmo.rpc.dispatcher import Dispatcher
from cosmo.schema import Settings

logger = logging.getLogger(__name__)

CORS_METHODS = ["GET", "POST", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization"]
CORS_MAX_AGE = 86400

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": ", ".join(CORS_METHODS),
    "Access-Control-Allow-Headers": ", ".join(CORS_HEADERS),
    "Access-Control-Max-Age": str(CORS_MAX_AGE),
}


def create_app(
    dispatcher: Dispatcher | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Build the FastAPI application around a dispatcher.

    Args:
        dispatcher: Handles POSTed envelopes (default: built from settings)
        settings: Provides http_path and, for the default dispatcher, the
                  database path and server identity
    """
    settings = settings or (dispatcher.settings if dispatcher else Settings())
    dispatcher = dispatcher or Dispatcher(settings=settings)
    path = settings.http_path

    app = FastAPI(
        title="Cosmo",
        description="MCP server for knowledge capsules.",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
        max_age=CORS_MAX_AGE,
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get(path)
    async def metadata() -> dict:
        return dispatcher.metadata()

    @app.post(path)
    async def rpc(request: Request) -> Response:
        body = await request.body()
        response = await run_in_threadpool(dispatcher.handle_raw, body)
        if response is None:
            return Response(status_code=202)
        return JSONResponse(response)

    @app.options(path)
    async def preflight() -> Response:
        return Response(status_code=200, headers=PREFLIGHT_HEADERS)

    logger.debug("HTTP routes mounted at %s", path)
    return app
