"""
HTTP front door for the HR Consultant MCP Server.

Starlette application exposing:
- POST/GET/DELETE /mcp: the stateless MCP endpoint (see mcp_hr.session)
- GET /health: static liveness payload

Every request passes the origin allow-list first. Disallowed origins get an
empty 403; allowed browser origins are reflected in the CORS headers.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Iterable
from typing import TYPE_CHECKING

from starlette.applications import Starlette
from starlette.datastructures import Headers, MutableHeaders
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from mcp_hr.dispatcher import SERVER_NAME
from mcp_hr.errors import UnavailableError, WidgetAssetError
from mcp_hr.logging import get_logger
from mcp_hr.origins import OriginPolicy
from mcp_hr.session import StatelessSessionManager
from mcp_hr.store import SQLiteEntityStore
from mcp_hr.widgets import WidgetRegistry

if TYPE_CHECKING:
    from mcp_hr.catalog import ToolSpec
    from mcp_hr.config import AppConfig

logger = get_logger(__name__)

MCP_PATH = "/mcp"
HEALTH_PATH = "/health"

CORS_ALLOW_METHODS = ("GET", "POST", "DELETE", "OPTIONS")
CORS_ALLOW_HEADERS = (
    "Content-Type",
    "Accept",
    "Mcp-Session-Id",
    "Last-Event-ID",
    "Mcp-Protocol-Version",
)
CORS_EXPOSE_HEADERS = ("Mcp-Session-Id",)


# =============================================================================
# Origin / CORS Middleware
# =============================================================================


class OriginAccessMiddleware:
    """
    ASGI middleware applying the origin allow-list and CORS headers.

    Args:
        app: Wrapped ASGI application.
        policy: Origin allow-list.
    """

    def __init__(self, app: ASGIApp, policy: OriginPolicy) -> None:
        self.app = app
        self.policy = policy

    @staticmethod
    def cors_headers(origin: str | None) -> dict[str, str]:
        if not origin:
            return {}
        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Expose-Headers": ", ".join(CORS_EXPOSE_HEADERS),
            "Vary": "Origin",
        }

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        origin = headers.get("origin")

        if not self.policy.is_allowed(origin):
            logger.warning(
                "Rejected request from disallowed origin",
                extra={
                    "origin": origin,
                    "method": scope["method"],
                    "path": scope["path"],
                },
            )
            await Response(status_code=403)(scope, receive, send)
            return

        cors = self.cors_headers(origin)

        if scope["method"] == "OPTIONS" and "access-control-request-method" in headers:
            preflight = {
                **cors,
                "Access-Control-Allow-Methods": ", ".join(CORS_ALLOW_METHODS),
                "Access-Control-Allow-Headers": ", ".join(CORS_ALLOW_HEADERS),
            }
            await Response(status_code=204, headers=preflight)(scope, receive, send)
            return

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start" and cors:
                response_headers = MutableHeaders(scope=message)
                for name, value in cors.items():
                    response_headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_cors)


# =============================================================================
# Endpoints
# =============================================================================


async def health(_request: Request) -> JSONResponse:
    return JSONResponse(
        {"status": "ok", "server": SERVER_NAME, "transport": "streamable-http"}
    )


async def _wait_for_disconnect(request: Request) -> None:
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def mcp_endpoint(request: Request) -> Response:
    """
    Run one MCP request in its own scope.

    The request is cancelled if the client disconnects before the reply is
    ready; the scope releases its resources either way.
    """
    manager: StatelessSessionManager = request.app.state.session_manager
    body = await request.body()

    handling = asyncio.ensure_future(
        manager.handle(request.method, body, request.headers)
    )
    disconnect = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        await asyncio.wait({handling, disconnect}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        disconnect.cancel()

    if not handling.done():
        handling.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await handling
        # Nobody is listening; the status is only for access logs
        return Response(status_code=499)

    try:
        reply = handling.result()
    except WidgetAssetError as e:
        logger.exception(
            "Widget markup missing",
            extra={"widget_id": e.widget_id, "assets_dir": e.assets_dir},
        )
        raise

    return Response(
        content=reply.body,
        status_code=reply.status,
        headers=reply.headers,
        media_type="application/json" if reply.body is not None else None,
    )


# =============================================================================
# Application
# =============================================================================


@contextlib.asynccontextmanager
async def lifespan(app: Starlette) -> AsyncIterator[None]:
    """Warm up shared state: widget markup is required, the store is not."""
    manager: StatelessSessionManager = app.state.session_manager
    await manager.widgets.load()
    try:
        await manager.store.ensure_tables()
    except UnavailableError as e:
        logger.warning(
            "Entity store warm-up failed; discovery requests are still served",
            extra={"error": e.message, "details": e.details},
        )
    yield


def create_app(
    config: AppConfig,
    *,
    widgets: WidgetRegistry | None = None,
    store: SQLiteEntityStore | None = None,
    specs: Iterable[ToolSpec] | None = None,
) -> Starlette:
    """
    Build the ASGI application.

    Args:
        config: Application configuration.
        widgets: Widget registry. Built from config if not provided.
        store: Entity store. Built from config if not provided.
        specs: Tool table. Defaults to the HR tools.

    Returns:
        The Starlette application wrapped with origin access control.
    """
    if widgets is None:
        widgets = WidgetRegistry(
            config.widgets.assets_dir,
            base_url=config.server.resolved_base_url(),
        )
    if store is None:
        store = SQLiteEntityStore(config.storage.db_path)

    policy = OriginPolicy.from_config(config)
    logger.debug("Origin allow-list", extra={"origins": list(policy.entries)})

    app = Starlette(
        routes=[
            Route(HEALTH_PATH, health, methods=["GET"]),
            Route(MCP_PATH, mcp_endpoint, methods=["POST", "GET", "DELETE"]),
        ],
        lifespan=lifespan,
    )
    app.state.session_manager = StatelessSessionManager(widgets, store, specs)
    app.state.origin_policy = policy
    app.add_middleware(OriginAccessMiddleware, policy=policy)
    return app
