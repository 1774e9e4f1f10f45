"""Starlette HTTP server assembly."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from model_gateway.app import AppContext, get_app_context
from model_gateway.auth.context import current_request_id
from model_gateway.errors import GatewayError
from model_gateway.middleware.audit import AuditMiddleware, mask_exception_message
from model_gateway.transport.routes import gateway_routes

logger = logging.getLogger(__name__)


async def _gateway_error_handler(request: Request, exc: GatewayError) -> Response:
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        "Request %s failed with %s: %s",
        current_request_id(),
        exc.code,
        mask_exception_message(exc.message),
    )
    return JSONResponse(
        {"error": exc.code, "message": exc.message},
        status_code=exc.http_status,
    )


async def _unexpected_error_handler(request: Request, exc: Exception) -> Response:
    logger.exception("Unexpected error handling request %s", current_request_id())
    return JSONResponse(
        {"error": "internal_error", "message": "Internal server error"},
        status_code=500,
    )


def create_http_app(context: AppContext | None = None) -> Starlette:
    """Create the gateway application.

    ``context`` defaults to the process-wide one built from configuration.
    """
    context = context or get_app_context()
    settings = context.settings

    middleware: list[Middleware] = [
        Middleware(
            AuditMiddleware,
            enabled=settings.auth.audit_enabled,
            trust_forwarded_headers=settings.server.http_trust_forwarded_headers,
        ),
    ]

    # CORS must be outermost so preflight requests get their headers.
    if settings.server.http_enable_cors and settings.server.http_allowed_origins:
        from starlette.middleware.cors import CORSMiddleware

        middleware.insert(
            0,
            Middleware(
                CORSMiddleware,
                allow_origins=list(settings.server.http_allowed_origins),
                allow_methods=["POST", "GET", "OPTIONS"],
                allow_headers=["Authorization", "Content-Type", "Accept"],
            ),
        )

    async def health_handler(request: Request) -> Response:
        return JSONResponse({"status": "healthy"})

    async def ready_handler(request: Request) -> Response:
        return JSONResponse({"status": "ready"})

    routes = [
        Route("/health", endpoint=health_handler, methods=["GET"]),
        Route("/ready", endpoint=ready_handler, methods=["GET"]),
        *gateway_routes(settings.server.route_prefix),
    ]

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info("Starting model routing gateway...")
        try:
            yield
        finally:
            logger.info("Stopping model routing gateway...")
            await context.aclose()

    app = Starlette(
        routes=routes,
        middleware=middleware,
        lifespan=lifespan,
        exception_handlers={
            GatewayError: _gateway_error_handler,
            Exception: _unexpected_error_handler,
        },
    )
    app.state.context = context
    return app
