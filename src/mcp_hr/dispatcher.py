"""
MCP request dispatcher for the HR Consultant MCP Server.

A Dispatcher serves exactly one inbound request: it is built with that
request's Catalog and entity store session and holds no other state.

Errors are reported in three tiers:
- unknown methods and malformed params raise JSONRPCError / ToolError and
  become JSON-RPC error responses;
- tool arguments failing the tool's schema raise InvalidArgumentError before
  the handler runs;
- DomainError raised by a handler, and unknown tool names, become normal tool
  results with ``isError: true``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from mcp_hr import __version__
from mcp_hr.errors import DomainError, InternalError, InvalidArgumentError, ToolError
from mcp_hr.logging import get_logger, request_context
from mcp_hr.protocol import (
    LATEST_PROTOCOL_VERSION,
    METHOD_CALL_TOOL,
    METHOD_INITIALIZE,
    METHOD_LIST_RESOURCE_TEMPLATES,
    METHOD_LIST_RESOURCES,
    METHOD_LIST_TOOLS,
    METHOD_PING,
    METHOD_READ_RESOURCE,
    NOTIFICATION_PREFIX,
    SUPPORTED_PROTOCOL_VERSIONS,
    JSONRPCRequest,
    create_method_not_found_error,
)

if TYPE_CHECKING:
    from mcp_hr.catalog import Catalog
    from mcp_hr.store import EntityStore
    from mcp_hr.widgets import WidgetDescriptor

logger = get_logger(__name__)

SERVER_NAME = "trey-hr-consultant"

MethodHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class InvocationResponse:
    """
    Result of a tools/call request.

    Attributes:
        summary: Text content shown to the user.
        payload: Structured content for the widget, if any.
        is_error: True for unknown tools and domain failures.
        widget: Widget bound to the invoked tool, if any.
    """

    summary: str
    payload: dict[str, Any] | None = None
    is_error: bool = False
    widget: WidgetDescriptor | None = None

    @property
    def widget_meta(self) -> dict[str, Any] | None:
        return self.widget.meta() if self.widget is not None else None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "content": [{"type": "text", "text": self.summary}],
            "isError": self.is_error,
        }
        if self.payload is not None:
            result["structuredContent"] = self.payload
        if self.widget is not None:
            result["_meta"] = self.widget.meta()
        return result


class Dispatcher:
    """
    Resolves one MCP request against a catalog.

    Example:
        >>> dispatcher = Dispatcher(catalog, store_session)
        >>> result = await dispatcher.dispatch(parse_request(body))
    """

    def __init__(self, catalog: Catalog, store: EntityStore) -> None:
        self.catalog = catalog
        self.store = store
        self._methods: dict[str, MethodHandler] = {
            METHOD_INITIALIZE: self.initialize,
            METHOD_PING: self.ping,
            METHOD_LIST_TOOLS: self.list_tools,
            METHOD_CALL_TOOL: self.call_tool_result,
            METHOD_LIST_RESOURCES: self.list_resources,
            METHOD_LIST_RESOURCE_TEMPLATES: self.list_resource_templates,
            METHOD_READ_RESOURCE: self.read_resource,
        }

    async def dispatch(self, request: JSONRPCRequest) -> dict[str, Any]:
        """
        Run the handler for a request's method.

        Args:
            request: Parsed JSON-RPC request.

        Returns:
            The JSON-RPC result; notifications are acknowledged with an
            empty result.

        Raises:
            JSONRPCError: If the method is not supported.
            ToolError: For invalid params and non-domain tool failures.
        """
        if request.method.startswith(NOTIFICATION_PREFIX):
            logger.debug("Notification received", extra={"method": request.method})
            return {}

        handler = self._methods.get(request.method)
        if handler is None:
            raise create_method_not_found_error(request.method)
        return await handler(request.params)

    # -------------------------------------------------------------------------
    # Handshake
    # -------------------------------------------------------------------------

    async def initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        requested = params.get("protocolVersion")
        version = (
            requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION
        )
        return {
            "protocolVersion": version,
            "capabilities": {"tools": {}, "resources": {}},
            "serverInfo": {"name": SERVER_NAME, "version": __version__},
        }

    async def ping(self, _params: dict[str, Any]) -> dict[str, Any]:
        return {}

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    async def list_tools(self, _params: dict[str, Any]) -> dict[str, Any]:
        return {"tools": [tool.to_dict() for tool in self.catalog.tools()]}

    async def list_resources(self, _params: dict[str, Any]) -> dict[str, Any]:
        return {
            "resources": [resource.to_dict() for resource in self.catalog.resources()]
        }

    async def list_resource_templates(self, _params: dict[str, Any]) -> dict[str, Any]:
        return {
            "resourceTemplates": [
                resource.to_template_dict() for resource in self.catalog.resources()
            ]
        }

    async def read_resource(self, params: dict[str, Any]) -> dict[str, Any]:
        """
        Return a resource's markup.

        An unknown uri yields empty contents with an error marker.
        """
        uri = params.get("uri")
        if not isinstance(uri, str) or not uri:
            raise InvalidArgumentError(
                "uri is required",
                details={"parameter": "uri"},
            )

        resource = self.catalog.get_resource(uri)
        if resource is None:
            logger.warning("Unknown resource requested", extra={"uri": uri})
            return {"contents": [], "_meta": {"error": f"Unknown resource: {uri}"}}
        return {"contents": [resource.contents()]}

    # -------------------------------------------------------------------------
    # Invocation
    # -------------------------------------------------------------------------

    async def call_tool(
        self, name: str, arguments: dict[str, Any] | None = None
    ) -> InvocationResponse:
        """
        Validate arguments and invoke a tool.

        Args:
            name: Tool name.
            arguments: Raw arguments from the request.

        Returns:
            The invocation response; widget metadata is attached whenever
            the tool has a widget binding.

        Raises:
            InvalidArgumentError: If the arguments fail the tool's schema.
            ToolError: If the handler fails with a non-domain error.
            InternalError: If the handler raises an unexpected exception.
        """
        with request_context(tool=name):
            return await self._call_tool(name, arguments)

    async def _call_tool(
        self, name: str, arguments: dict[str, Any] | None
    ) -> InvocationResponse:
        tool = self.catalog.get_tool(name)
        if tool is None:
            logger.warning("Unknown tool requested")
            return InvocationResponse(summary=f"Unknown tool: {name}", is_error=True)

        try:
            args = tool.parse_arguments(arguments)
        except InvalidArgumentError as e:
            logger.info(
                "Tool arguments rejected",
                extra={"errors": e.details.get("errors")},
            )
            raise

        try:
            result = await tool.handler(args, self.store)
        except DomainError as e:
            logger.info(
                "Tool reported domain failure",
                extra={"error_code": e.error_code, "error": e.message},
            )
            return InvocationResponse(summary=e.message, is_error=True, widget=tool.widget)
        except ToolError:
            raise
        except Exception as e:
            logger.exception("Unexpected error in tool")
            raise InternalError(
                message=f"Internal error in tool '{name}': {e!s}",
                details={"tool": name, "exception_type": type(e).__name__},
            ) from e

        return InvocationResponse(
            summary=result.summary,
            payload=result.payload,
            widget=tool.widget,
        )

    async def call_tool_result(self, params: dict[str, Any]) -> dict[str, Any]:
        """tools/call entry point."""
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidArgumentError(
                "Tool name is required",
                details={"parameter": "name"},
            )
        response = await self.call_tool(name, params.get("arguments"))
        return response.to_dict()
