"""
Tool and resource catalog for the HR Consultant MCP Server.

This module provides:
- ToolArguments: base pydantic model for a tool's argument schema
- ToolSpec: static table entry describing a tool and its handler
- ToolDescriptor / ResourceDescriptor: catalog entries with widget bindings resolved
- Catalog: name → tool and uri → resource lookup tables
- build_catalog: assemble a catalog from tool specs and loaded widgets

Handlers never see raw arguments: the descriptor validates them first, and
handlers never attach widget metadata: the dispatcher does that from the
descriptor's binding.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, ValidationError

from mcp_hr.errors import InvalidArgumentError
from mcp_hr.widgets import MIME_TYPE, WidgetDescriptor

if TYPE_CHECKING:
    from mcp_hr.store import EntityStore
    from mcp_hr.widgets import WidgetRegistry


class ToolArguments(BaseModel):
    """
    Base class for tool argument models.

    Unknown fields are rejected and values are not coerced, so the generated
    JSON schema (``additionalProperties: false``) matches what is enforced.
    """

    model_config = ConfigDict(extra="forbid", strict=True)


class NoArguments(ToolArguments):
    """Argument model for tools that take no arguments."""


@dataclass(frozen=True)
class ToolResult:
    """
    What a handler returns.

    Attributes:
        summary: Human-readable text shown in the conversation.
        payload: Machine-readable data for the widget, if any.
    """

    summary: str
    payload: dict[str, Any] | None = None


# Handlers receive validated arguments and the per-request entity store
ToolHandler = Callable[[Any, "EntityStore"], Awaitable[ToolResult]]


@dataclass(frozen=True)
class ToolAnnotations:
    """Behavior hints advertised to clients."""

    read_only: bool = False
    destructive: bool = False
    open_world: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {
            "readOnlyHint": self.read_only,
            "destructiveHint": self.destructive,
            "openWorldHint": self.open_world,
        }


@dataclass(frozen=True)
class ToolSpec:
    """
    Static description of a tool, before widget bindings are resolved.

    Attributes:
        name: Catalog-unique tool name.
        title: Human-readable title.
        description: What the tool does, for the model.
        arguments: Pydantic model validating the tool's arguments.
        handler: Async function implementing the tool.
        annotations: Behavior hints.
        widget_id: Widget used to render results, if any.
    """

    name: str
    title: str
    description: str
    arguments: type[ToolArguments]
    handler: ToolHandler
    annotations: ToolAnnotations = ToolAnnotations()
    widget_id: str | None = None


def _format_validation_errors(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {
            "loc": ".".join(str(part) for part in error["loc"]),
            "msg": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]


@dataclass(frozen=True)
class ToolDescriptor:
    """A catalog tool with its widget binding resolved."""

    name: str
    title: str
    description: str
    arguments: type[ToolArguments]
    handler: ToolHandler
    annotations: ToolAnnotations
    widget: WidgetDescriptor | None = None

    @classmethod
    def from_spec(
        cls, spec: ToolSpec, widget: WidgetDescriptor | None = None
    ) -> ToolDescriptor:
        return cls(
            name=spec.name,
            title=spec.title,
            description=spec.description,
            arguments=spec.arguments,
            handler=spec.handler,
            annotations=spec.annotations,
            widget=widget,
        )

    def input_schema(self) -> dict[str, Any]:
        """JSON schema of the tool's arguments."""
        schema = self.arguments.model_json_schema()
        schema.setdefault("type", "object")
        schema.setdefault("properties", {})
        schema["additionalProperties"] = False
        return schema

    def parse_arguments(self, arguments: Any) -> ToolArguments:
        """
        Validate raw call arguments against the tool's schema.

        Args:
            arguments: The ``arguments`` member of a tools/call request.

        Returns:
            The validated argument model.

        Raises:
            InvalidArgumentError: If the arguments do not match the schema.
        """
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidArgumentError(
                f"Arguments for tool '{self.name}' must be an object",
                details={"tool": self.name, "type": type(arguments).__name__},
            )
        try:
            return self.arguments.model_validate(arguments)
        except ValidationError as e:
            raise InvalidArgumentError(
                f"Invalid arguments for tool '{self.name}'",
                details={"tool": self.name, "errors": _format_validation_errors(e)},
            ) from e

    def to_dict(self) -> dict[str, Any]:
        """Descriptor as returned by tools/list."""
        tool: dict[str, Any] = {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "inputSchema": self.input_schema(),
            "annotations": self.annotations.to_dict(),
        }
        if self.widget is not None:
            tool["_meta"] = self.widget.meta()
        return tool


@dataclass(frozen=True)
class ResourceDescriptor:
    """A readable resource; one exists per widget."""

    uri: str
    title: str
    mime_type: str
    widget: WidgetDescriptor | None = None

    @classmethod
    def for_widget(cls, widget: WidgetDescriptor) -> ResourceDescriptor:
        return cls(
            uri=widget.template_uri,
            title=widget.title,
            mime_type=MIME_TYPE,
            widget=widget,
        )

    def _base_dict(self) -> dict[str, Any]:
        resource: dict[str, Any] = {
            "name": self.title,
            "description": f"{self.title} widget markup",
            "mimeType": self.mime_type,
        }
        if self.widget is not None:
            resource["_meta"] = self.widget.meta()
        return resource

    def to_dict(self) -> dict[str, Any]:
        """Entry as returned by resources/list."""
        return {"uri": self.uri, **self._base_dict()}

    def to_template_dict(self) -> dict[str, Any]:
        """Entry as returned by resources/templates/list."""
        return {"uriTemplate": self.uri, **self._base_dict()}

    def contents(self) -> dict[str, Any]:
        """Content item as returned by resources/read."""
        item: dict[str, Any] = {
            "uri": self.uri,
            "mimeType": self.mime_type,
            "text": self.widget.markup if self.widget is not None else "",
        }
        if self.widget is not None:
            item["_meta"] = self.widget.meta()
        return item


class Catalog:
    """
    Lookup tables of tools by name and resources by uri.

    Example:
        >>> catalog = Catalog()
        >>> catalog.register_tool(ToolDescriptor.from_spec(ping_spec))
        >>> catalog.get_tool("ping").name
        'ping'
    """

    def __init__(
        self,
        tools: Iterable[ToolDescriptor] = (),
        resources: Iterable[ResourceDescriptor] = (),
    ) -> None:
        self._tools: dict[str, ToolDescriptor] = {}
        self._resources: dict[str, ResourceDescriptor] = {}
        for tool in tools:
            self.register_tool(tool)
        for resource in resources:
            self.register_resource(resource)

    def register_tool(self, tool: ToolDescriptor) -> None:
        """
        Add a tool to the catalog.

        Raises:
            ValueError: If a tool with the same name is already registered.
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def register_resource(self, resource: ResourceDescriptor) -> None:
        """
        Add a resource to the catalog.

        Raises:
            ValueError: If a resource with the same uri is already registered.
        """
        if resource.uri in self._resources:
            raise ValueError(f"Resource '{resource.uri}' is already registered")
        self._resources[resource.uri] = resource

    def get_tool(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def get_resource(self, uri: str) -> ResourceDescriptor | None:
        return self._resources.get(uri)

    def tools(self) -> list[ToolDescriptor]:
        return list(self._tools.values())

    def resources(self) -> list[ResourceDescriptor]:
        return list(self._resources.values())

    def __contains__(self, name: str) -> bool:
        """Check if a tool is registered (for 'in' operator)."""
        return name in self._tools

    def __len__(self) -> int:
        """Return the number of registered tools."""
        return len(self._tools)


def build_catalog(widgets: WidgetRegistry, specs: Iterable[ToolSpec]) -> Catalog:
    """
    Build a catalog from tool specs and a loaded widget registry.

    Every widget becomes a resource; each spec's widget_id is resolved to
    its descriptor.

    Args:
        widgets: Loaded widget registry.
        specs: Tool table.

    Returns:
        A new Catalog.

    Raises:
        KeyError: If a spec names a widget the registry does not define.
    """
    catalog = Catalog()
    for widget in widgets.all():
        catalog.register_resource(ResourceDescriptor.for_widget(widget))
    for spec in specs:
        widget = widgets.get(spec.widget_id) if spec.widget_id is not None else None
        catalog.register_tool(ToolDescriptor.from_spec(spec, widget))
    return catalog
