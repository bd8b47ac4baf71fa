"""
FastAPI server for DynDNS Relay.

This module provides the application factory with the single update endpoint.
Requests to the update path are authorized by a shared-secret query parameter
before any other processing; every other path answers 404.
"""

from __future__ import annotations

import hmac
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette import status as st_status
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from dyndns_relay import __version__
from dyndns_relay.cloudflare import CloudFlareClient
from dyndns_relay.models import ErrorKind
from dyndns_relay.updater import DNSUpdater

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from typing import Final

    from starlette.types import ASGIApp

    from dyndns_relay.config import Config, ServerConfig


logger = logging.getLogger(__name__)

# The update endpoint answers to any of these methods
UPDATE_METHODS: Final[list[str]] = [
    "GET",
    "HEAD",
    "POST",
    "PUT",
    "PATCH",
    "DELETE",
    "OPTIONS",
]

UNKNOWN_PATH_MESSAGE: Final[str] = "Unknown request path"
INVALID_AUTH_MESSAGE: Final[str] = "Invalid auth code"
INTERNAL_ERROR_MESSAGE: Final[str] = "An error occurred!"


def get_config(request: Request) -> Config:
    """Get the configuration of the application serving `request`."""
    return request.app.state.config


def first_query_values(request: Request) -> dict[str, str]:
    """
    Get the query parameters of `request`, keeping the first of repeated keys.

    Starlette's `query_params.get` returns the last value of a repeated key.
    """
    values: dict[str, str] = {}
    for key, value in request.query_params.multi_items():
        values.setdefault(key, value)
    return values


def is_authorized(provided: str | None, expected: str) -> bool:
    """
    Check a shared-secret code in constant time.

    Parameters
    ----------
    provided : str | None
        The code sent by the client, or None if absent.
    expected : str
        The configured code. An empty code never authorizes.

    Returns
    -------
    bool
        True if the code matches.
    """
    if provided is None or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def get_caller_ip(request: Request, server_config: ServerConfig) -> str | None:
    """
    Determine the caller IP as observed by the edge/proxy.

    Parameters
    ----------
    request : Request
        The incoming request.
    server_config : ServerConfig
        Server configuration (client IP header and peer-address fallback).

    Returns
    -------
    str | None
        The caller IP, or None if it cannot be determined.
    """
    header_value = request.headers.get(server_config.client_ip_header, "")
    # X-Forwarded-For style lists start with the original client
    caller_ip = header_value.split(",")[0].strip()
    if caller_ip:
        return caller_ip
    if server_config.trust_peer_address and request.client is not None:
        return request.client.host
    return None


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Middleware for shared-secret authorization.

    Intercepts requests to the update path before the handler runs, so an
    unauthorized request never reaches validation or the provider API.
    """

    def __init__(self, app: ASGIApp, config: Config) -> None:
        super().__init__(app)
        self.config = config

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process the request through the authorization check."""
        if request.url.path != self.config.server.update_path:
            return await call_next(request)

        provided = first_query_values(request).get(self.config.auth.param)
        if not is_authorized(provided, self.config.auth.code):
            logger.warning(
                "[auth] Rejected request from %s (code %s).",
                request.client.host if request.client else "unknown",
                "missing" if provided is None else "invalid",
            )
            return PlainTextResponse(
                INVALID_AUTH_MESSAGE,
                status_code=ErrorKind.FORBIDDEN.status_code,
            )

        return await call_next(request)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    config: Config = app.state.config

    logger.info(
        'DynDNS Relay starting on "%s:%d" (update path: "%s").',
        config.server.host,
        config.server.port,
        config.server.update_path,
    )

    yield

    logger.info("DynDNS Relay shutting down.")


async def http_exception_handler(
    _request: Request,
    exc: StarletteHTTPException,
) -> Response:
    """
    Render HTTP exceptions as plain text.

    Unknown routes are raised by the router as a 404 HTTP exception.
    """
    if exc.status_code == st_status.HTTP_404_NOT_FOUND:
        message = UNKNOWN_PATH_MESSAGE
    else:
        message = str(exc.detail)
    return PlainTextResponse(message, status_code=exc.status_code, headers=exc.headers)


async def unhandled_exception_handler(_request: Request, exc: Exception) -> Response:
    """Answer unexpected errors with a generic 500."""
    logger.error("Unhandled error while processing request.", exc_info=exc)
    return PlainTextResponse(
        INTERNAL_ERROR_MESSAGE,
        status_code=st_status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def update(request: Request) -> Response:
    """
    Update the DNS record of `hostname` to `myip` or the caller IP.

    Authorization is checked by AuthMiddleware.
    """
    config = get_config(request)
    caller_ip = get_caller_ip(request, config.server)

    async with CloudFlareClient(
        config.provider.api_token,
        base_url=config.provider.api_base,
        timeout=config.provider.timeout,
    ) as client:
        updater = DNSUpdater(
            client,
            zone_selection=config.provider.zone_selection,
            skip_unchanged=config.provider.skip_unchanged,
        )
        result = await updater.handle_update(first_query_values(request), caller_ip)

    if result.success:
        return PlainTextResponse("OK", status_code=st_status.HTTP_200_OK)
    return PlainTextResponse(result.message, status_code=result.status_code)


# Note: this endpoint is only registered when config.health.enabled is set.
async def health() -> Response:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"})


def create_app(config: Config) -> FastAPI:
    """
    Create the DynDNS Relay application.

    Parameters
    ----------
    config : Config
        Loaded configuration. It is kept on `app.state.config` and handed to
        the authorization middleware.

    Returns
    -------
    FastAPI
        The configured application.
    """
    app = FastAPI(
        title="DynDNS Relay",
        description="Dynamic DNS update endpoint for CloudFlare",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        redirect_slashes=False,
    )
    app.state.config = config

    app.add_middleware(AuthMiddleware, config=config)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.add_api_route(
        config.server.update_path,
        update,
        methods=UPDATE_METHODS,
        include_in_schema=False,
    )
    if config.health.enabled:
        app.add_api_route("/health", health, methods=["GET"])

    return app
