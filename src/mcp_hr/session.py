"""
Stateless request lifecycle for the HR Consultant MCP Server.

Every inbound HTTP request gets its own RequestScope: a fresh Catalog, a
fresh entity store session and a fresh Dispatcher. Nothing survives the
request, so there is no session affinity and no Mcp-Session-Id negotiation.

Request states:
- received: scope constructed, nothing dispatched yet
- dispatching: the JSON-RPC message is being processed
- responded: a reply was produced
- aborted: the client went away (or processing failed) before a reply

The scope's resources are released on every exit path, including task
cancellation caused by a client disconnect.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import TracebackType
from typing import TYPE_CHECKING

from mcp_hr.catalog import ToolSpec, build_catalog
from mcp_hr.dispatcher import Dispatcher
from mcp_hr.errors import ToolError
from mcp_hr.logging import get_logger, request_context
from mcp_hr.protocol import (
    INVALID_REQUEST,
    SUPPORTED_PROTOCOL_VERSIONS,
    JSONRPCError,
    create_internal_error,
    create_method_not_allowed_error,
    format_error_response,
    format_success_response,
    parse_request,
    tool_error_to_jsonrpc_error,
)

if TYPE_CHECKING:
    from mcp_hr.catalog import Catalog
    from mcp_hr.store import SQLiteEntityStore, StoreSession
    from mcp_hr.widgets import WidgetRegistry

logger = get_logger(__name__)

PROTOCOL_VERSION_HEADER = "mcp-protocol-version"


class RequestState(str, Enum):
    """
    States of one inbound request.

    State transitions:
    - received → dispatching (message handed to the dispatcher)
    - received → aborted (client left before dispatch)
    - dispatching → responded (reply produced)
    - dispatching → aborted (client left, or processing failed)
    """

    RECEIVED = "received"
    DISPATCHING = "dispatching"
    RESPONDED = "responded"
    ABORTED = "aborted"


# Valid state transitions
_VALID_TRANSITIONS: dict[RequestState, set[RequestState]] = {
    RequestState.RECEIVED: {RequestState.DISPATCHING, RequestState.ABORTED},
    RequestState.DISPATCHING: {RequestState.RESPONDED, RequestState.ABORTED},
    RequestState.RESPONDED: set(),
    RequestState.ABORTED: set(),
}


@dataclass(frozen=True)
class HTTPReply:
    """
    Transport-neutral reply produced for one request.

    Attributes:
        status: HTTP status code.
        body: JSON text, or None for an empty body.
        headers: Extra response headers.
    """

    status: int
    body: str | None = None
    headers: dict[str, str] = field(default_factory=dict)


async def process_request(request_body: str | bytes, dispatcher: Dispatcher) -> str | None:
    """
    Process a single JSON-RPC message and return the response.

    This function handles the complete message lifecycle:
    1. Parse the JSON-RPC request
    2. Dispatch it to the request's Dispatcher
    3. Format the response (success or error)

    Args:
        request_body: Raw request body.
        dispatcher: The Dispatcher owned by this request's scope.

    Returns:
        JSON string containing the response, or None for notifications.
    """
    request_id: str | int | None = None

    try:
        request = parse_request(request_body)
        request_id = request.id

        with request_context(method=request.method, request_id=request_id):
            # No id means no response
            if request.is_notification:
                try:
                    await dispatcher.dispatch(request)
                except (JSONRPCError, ToolError) as e:
                    logger.warning(
                        "Error processing notification", extra={"error": str(e)}
                    )
                return None

            result = await dispatcher.dispatch(request)
            return format_success_response(request_id, result).to_json()

    except JSONRPCError as e:
        return format_error_response(request_id, e).to_json()

    except ToolError as e:
        jsonrpc_error = tool_error_to_jsonrpc_error(e)
        return format_error_response(request_id, jsonrpc_error).to_json()

    except Exception as e:
        logger.exception(
            "Unexpected error processing request",
            extra={"request_id": request_id, "error": str(e)},
        )
        jsonrpc_error = create_internal_error(
            message=f"Internal server error: {type(e).__name__}",
            details={"exception": str(e)},
        )
        return format_error_response(request_id, jsonrpc_error).to_json()


class RequestScope:
    """
    Ephemeral object graph serving exactly one request.

    Use as an async context manager; leaving the block releases the store
    session whatever the outcome.

    Example:
        >>> async with RequestScope(registry, store, TOOL_SPECS) as scope:
        ...     scope.begin()
        ...     body = await process_request(raw, scope.dispatcher)
        ...     scope.finish()

    Attributes:
        state: Current request state.
        catalog: Catalog built for this request.
        store_session: Entity store session opened for this request.
        dispatcher: Dispatcher bound to the catalog and store session.
    """

    def __init__(
        self,
        widgets: WidgetRegistry,
        store: SQLiteEntityStore,
        specs: Iterable[ToolSpec],
    ) -> None:
        self._widgets = widgets
        self._store = store
        self._specs = specs
        self._state = RequestState.RECEIVED
        self.catalog: Catalog | None = None
        self.store_session: StoreSession | None = None
        self.dispatcher: Dispatcher | None = None
        self.released = False

    @property
    def state(self) -> RequestState:
        return self._state

    def _transition(self, new_state: RequestState) -> None:
        if new_state not in _VALID_TRANSITIONS[self._state]:
            raise RuntimeError(
                f"Invalid request state transition: "
                f"{self._state.value} -> {new_state.value}"
            )
        self._state = new_state

    def begin(self) -> Dispatcher:
        """Mark the request as dispatching and return its Dispatcher."""
        if self.dispatcher is None:
            raise RuntimeError("Request scope used outside its context")
        self._transition(RequestState.DISPATCHING)
        return self.dispatcher

    def finish(self) -> None:
        """Mark the request as responded."""
        self._transition(RequestState.RESPONDED)

    async def __aenter__(self) -> RequestScope:
        # Widget markup loads on first touch; a missing artifact is fatal
        await self._widgets.load()
        self.catalog = build_catalog(self._widgets, self._specs)
        self.store_session = self._store.open_session()
        self.dispatcher = Dispatcher(self.catalog, self.store_session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            if self._state is not RequestState.RESPONDED:
                self._transition(RequestState.ABORTED)
                if exc_type is not None and issubclass(exc_type, asyncio.CancelledError):
                    logger.info("Request aborted by client disconnect")
                elif exc is not None:
                    logger.warning(
                        "Request aborted",
                        extra={"error_type": type(exc).__name__, "error": str(exc)},
                    )
        finally:
            self.release()

    def release(self) -> None:
        """Close the store session and drop the object graph. Idempotent."""
        if self.released:
            return
        self.released = True
        if self.store_session is not None:
            self.store_session.close()
        self.dispatcher = None
        self.catalog = None


class StatelessSessionManager:
    """
    Streamable-HTTP handling for the ``/mcp`` endpoint without sessions.

    Each call to handle() runs inside its own RequestScope. Only the widget
    registry (load-once) and the entity store handle are shared.

    Example:
        >>> manager = StatelessSessionManager(registry, store)
        >>> reply = await manager.handle("POST", body, headers)
        >>> reply.status
        200
    """

    def __init__(
        self,
        widgets: WidgetRegistry,
        store: SQLiteEntityStore,
        specs: Iterable[ToolSpec] | None = None,
    ) -> None:
        if specs is None:
            from mcp_hr.tools import TOOL_SPECS

            specs = TOOL_SPECS
        self.widgets = widgets
        self.store = store
        self.specs = tuple(specs)

    def open_scope(self) -> RequestScope:
        """Create the scope for one inbound request."""
        return RequestScope(self.widgets, self.store, self.specs)

    async def handle(
        self,
        method: str,
        body: bytes,
        headers: Mapping[str, str],
    ) -> HTTPReply:
        """
        Handle one HTTP request to the MCP endpoint.

        Args:
            method: HTTP method.
            body: Raw request body.
            headers: Request headers, looked up by lowercase name.

        Returns:
            The reply to send.

        Raises:
            WidgetAssetError: If widget markup is missing.
            asyncio.CancelledError: If the client disconnected.
        """
        with request_context(http_method=method):
            async with self.open_scope() as scope:
                dispatcher = scope.begin()
                reply = await self._reply(method, body, headers, dispatcher)
                scope.finish()
                return reply

    async def _reply(
        self,
        method: str,
        body: bytes,
        headers: Mapping[str, str],
        dispatcher: Dispatcher,
    ) -> HTTPReply:
        if method != "POST":
            # No standalone stream and no session to terminate
            error = create_method_not_allowed_error()
            return HTTPReply(
                status=405,
                body=format_error_response(None, error).to_json(),
                headers={"Allow": "POST"},
            )

        version = headers.get(PROTOCOL_VERSION_HEADER)
        if version is not None and version not in SUPPORTED_PROTOCOL_VERSIONS:
            error = JSONRPCError(
                code=INVALID_REQUEST,
                message=(
                    f"Bad Request: Unsupported protocol version: {version}. "
                    f"Supported versions: {', '.join(SUPPORTED_PROTOCOL_VERSIONS)}"
                ),
            )
            return HTTPReply(status=400, body=format_error_response(None, error).to_json())

        response = await process_request(body, dispatcher)
        if response is None:
            return HTTPReply(status=202)
        return HTTPReply(status=200, body=response)
