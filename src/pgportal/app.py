from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, cast

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from pgportal.api.cors import UniformCORSMiddleware
from pgportal.api.deps import Gateway, error_response, extract_routing, get_gateway, require_secret
from pgportal.api.routes_health import create_health_router
from pgportal.api.routes_message import create_message_router
from pgportal.api.routes_stream import StreamEndpoint
from pgportal.config.settings import Settings
from pgportal.db.executor import ExecutionWrapper
from pgportal.db.router import ConnectionRouter
from pgportal.errors import GatewayError
from pgportal.mcp.tools import GatewayTools
from pgportal.sessions.registry import SessionRegistry

CATCH_ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


async def _handle_gateway_error(request: Request, exc: Exception) -> JSONResponse:
    return error_response(cast(GatewayError, exc))


def create_app(
    *,
    settings: Settings | None = None,
    router: ConnectionRouter | None = None,
    executor: ExecutionWrapper | None = None,
    registry: SessionRegistry | None = None,
) -> FastAPI:
    settings = settings if settings is not None else Settings()
    router = router if router is not None else ConnectionRouter(settings.pool)
    if executor is None:
        executor = ExecutionWrapper(router, schema_name=settings.schema_name)
    logger = logging.getLogger("pgportal")

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            await app.state.gateway.router.close()

    # No interactive docs: every path outside the gateway's own is a 404.
    app = FastAPI(
        title="pgportal",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.gateway = Gateway(
        settings=settings,
        registry=registry if registry is not None else SessionRegistry(),
        router=router,
        tools=GatewayTools(executor),
    )

    app.add_middleware(UniformCORSMiddleware, allow_origin=settings.http.cors_allow_origin)
    app.add_exception_handler(GatewayError, _handle_gateway_error)
    logger.debug("CORS allowed origin: %s", settings.http.cors_allow_origin)

    app.add_route(settings.http.sse_path, StreamEndpoint(), methods=["GET"])
    app.include_router(create_message_router(settings.http.message_path))
    app.include_router(create_health_router(settings.http.health_path))

    # Registered last so it only sees unmatched paths.
    @app.api_route(
        "/{full_path:path}",
        methods=CATCH_ALL_METHODS,
        dependencies=[Depends(require_secret)],
        include_in_schema=False,
    )
    async def catch_all(full_path: str, request: Request) -> Any:
        extract_routing(get_gateway(request).settings, request.query_params)
        return JSONResponse({"error": "Not found"}, status_code=404)

    return app
