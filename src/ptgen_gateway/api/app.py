"""FastAPI application: the single gateway endpoint.

Served paths are ``/``, ``/api``, ``/api/{key}`` and ``/{key}``; each
accepts GET, HEAD and POST with the same parameters. OPTIONS on any path
is a CORS preflight. Every other path is a JSON 404.
"""

import logging

from fastapi import FastAPI, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse

from ptgen_gateway import __version__
from ptgen_gateway.api.dependencies import GatewayServices, ServicesDep, lifespan
from ptgen_gateway.config import settings
from ptgen_gateway.dto import QueryParams, build_envelope
from ptgen_gateway.errors import INTERNAL_ERROR, GatewayError
from ptgen_gateway.services.validator import RequestContext, is_browser

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Allow-Credentials": "false",
}

NOT_FOUND_ERROR = "API endpoint not found. Please check the documentation for valid endpoints."
NOT_FOUND_MESSAGE = "This is a backend API service. For API usage, please refer to the documentation."


def is_gateway_path(path: str) -> bool:
    """``/``, ``/api``, ``/api/{key}`` and ``/{key}``."""
    segments = [segment for segment in path.split("/") if segment]
    if len(segments) <= 1:
        return True
    return len(segments) == 2 and segments[0] == "api"


def _raw_path(request: Request) -> str:
    raw = request.scope.get("raw_path")
    return raw.decode("latin-1") if raw else request.url.path


async def _body_params(request: Request) -> object:
    if request.method != "POST":
        return None
    try:
        return await request.json()
    except ValueError:
        # Unparsable body: the query string alone carries the parameters
        return None


def create_app(services: GatewayServices | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        services: Pre-built services (tests inject fakes here). Built from
            settings at startup when None.

    Returns:
        The configured application
    """
    app = FastAPI(
        title="PT-Gen Gateway",
        description="Media metadata gateway for Douban, IMDb, TMDB, Bangumi and Steam",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    if services is not None:
        app.state.services = services

    @app.middleware("http")
    async def cors(request: Request, call_next) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        services = getattr(request.app.state, "services", None)
        config = services.settings if services is not None else settings
        return JSONResponse(build_envelope({"error": exc.message}, config), status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(build_envelope({"error": INTERNAL_ERROR}), status_code=500, headers=CORS_HEADERS)

    @app.api_route("/{path:path}", methods=["GET", "HEAD", "POST"])
    async def gateway(request: Request, path: str, services: ServicesDep) -> Response:
        """Validate, route and answer one request."""
        params = QueryParams.merge(request.query_params, await _body_params(request))
        headers = {name.lower(): value for name, value in request.headers.items()}
        ctx = RequestContext(
            method=request.method,
            path=_raw_path(request),
            query=request.url.query,
            headers=headers,
            params=params.routing(),
        )

        handler = services.handler
        outcome = services.validator.validate(ctx)
        if outcome.serve_root_page:
            return HTMLResponse(handler.root_page())

        if not is_gateway_path(request.url.path):
            return JSONResponse(
                handler.envelope({"error": NOT_FOUND_ERROR, "message": NOT_FOUND_MESSAGE}),
                status_code=404,
            )

        routing = {name: value for name, value in params.routing().items() if name != "key"}
        if request.method != "POST" and not routing:
            if is_browser(headers):
                return HTMLResponse(handler.root_page())
            return JSONResponse(handler.root_document())

        status_code, body = await handler.handle_query(params)
        return JSONResponse(body, status_code=status_code)

    return app


app = create_app()


if __name__ == "__main__":
    from ptgen_gateway.__main__ import main

    main()
