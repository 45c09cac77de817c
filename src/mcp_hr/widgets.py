"""
Widget registry for the HR Consultant MCP Server.

A widget is an HTML template the MCP client renders for a tool result. Each
widget's markup is a build artifact read from the assets directory:

1. ``{assets_dir}/{id}.html`` if present;
2. otherwise the lexicographically last ``{id}-*.html`` (content-hashed build);
3. otherwise WidgetAssetError, which aborts startup.

At load time the server's public base URL is injected right after the
``<html>`` open tag as ``window.__SERVER_BASE_URL__`` so widgets can call
back to this server. Markup is loaded once per registry and cached.
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mcp_hr.errors import WidgetAssetError
from mcp_hr.logging import get_logger

logger = get_logger(__name__)

MIME_TYPE = "text/html+skybridge"

_HTML_OPEN_TAG = re.compile(r"<html\b[^>]*>", re.IGNORECASE)


# =============================================================================
# Data Models
# =============================================================================


@dataclass(frozen=True)
class WidgetDefinition:
    """Static description of a widget, before its markup is loaded."""

    id: str
    title: str
    template_uri: str
    invoking_text: str
    invoked_text: str


@dataclass(frozen=True)
class WidgetDescriptor:
    """
    A widget with its loaded markup.

    Attributes:
        id: Widget identifier, also the artifact file stem.
        title: Human-readable title.
        template_uri: Resource URI clients fetch the markup from.
        invoking_text: Status text shown while the tool runs.
        invoked_text: Status text shown once the tool finished.
        markup: Full HTML document with runtime configuration injected.
    """

    id: str
    title: str
    template_uri: str
    invoking_text: str
    invoked_text: str
    markup: str = field(repr=False)

    def meta(self) -> dict[str, Any]:
        """
        Rendering hints attached to tool descriptors, resources and results.

        Returns:
            Dictionary of ``openai/*`` metadata keys.
        """
        return {
            "openai/outputTemplate": self.template_uri,
            "openai/toolInvocation/invoking": self.invoking_text,
            "openai/toolInvocation/invoked": self.invoked_text,
            "openai/widgetAccessible": True,
        }


DASHBOARD_WIDGET_ID = "hr-dashboard"
PROFILE_WIDGET_ID = "consultant-profile"
BULK_EDITOR_WIDGET_ID = "bulk-editor"

WIDGET_DEFINITIONS: tuple[WidgetDefinition, ...] = (
    WidgetDefinition(
        id=DASHBOARD_WIDGET_ID,
        title="HR Dashboard",
        template_uri="ui://widget/hr-dashboard.html",
        invoking_text="Loading HR dashboard…",
        invoked_text="Dashboard ready",
    ),
    WidgetDefinition(
        id=PROFILE_WIDGET_ID,
        title="Consultant Profile",
        template_uri="ui://widget/consultant-profile.html",
        invoking_text="Loading consultant profile…",
        invoked_text="Profile ready",
    ),
    WidgetDefinition(
        id=BULK_EDITOR_WIDGET_ID,
        title="Bulk Editor",
        template_uri="ui://widget/bulk-editor.html",
        invoking_text="Opening bulk editor…",
        invoked_text="Editor ready",
    ),
)


# =============================================================================
# Markup Loading
# =============================================================================


def find_widget_markup(assets_dir: Path, widget_id: str) -> Path:
    """
    Locate the markup artifact for a widget.

    Args:
        assets_dir: Directory containing built widget HTML.
        widget_id: Widget identifier.

    Returns:
        Path of the file to load.

    Raises:
        WidgetAssetError: If the directory or the artifact is missing.
    """
    if not assets_dir.is_dir():
        raise WidgetAssetError(
            widget_id,
            str(assets_dir),
            f"Widget assets not found at {assets_dir}. Build the widgets first.",
        )

    direct = assets_dir / f"{widget_id}.html"
    if direct.is_file():
        return direct

    candidates = sorted(
        p.name
        for p in assets_dir.iterdir()
        if p.is_file() and p.name.startswith(f"{widget_id}-") and p.name.endswith(".html")
    )
    if candidates:
        return assets_dir / candidates[-1]

    raise WidgetAssetError(
        widget_id,
        str(assets_dir),
        f'Widget HTML for "{widget_id}" not found in {assets_dir}.',
    )


def inject_runtime_config(markup: str, base_url: str) -> str:
    """
    Insert the runtime configuration script right after the ``<html>`` tag.

    Documents without an ``<html>`` tag get the script prepended.

    Args:
        markup: Widget HTML document.
        base_url: Public base URL of this server.

    Returns:
        The markup with ``window.__SERVER_BASE_URL__`` defined.
    """
    value = json.dumps(base_url).replace("</", "<\\/")
    snippet = f"<script>window.__SERVER_BASE_URL__={value};</script>"

    match = _HTML_OPEN_TAG.search(markup)
    if match is None:
        return snippet + markup
    return markup[: match.end()] + snippet + markup[match.end() :]


# =============================================================================
# Registry
# =============================================================================


class WidgetRegistry:
    """
    Process-wide, load-once cache of widget descriptors.

    Concurrent first access loads the markup exactly once; later calls reuse
    the cached descriptors.

    Example:
        >>> registry = WidgetRegistry("assets", base_url="https://hr.example")
        >>> await registry.load()
        >>> registry.get("hr-dashboard").template_uri
        'ui://widget/hr-dashboard.html'
    """

    def __init__(
        self,
        assets_dir: str | Path,
        base_url: str,
        definitions: tuple[WidgetDefinition, ...] = WIDGET_DEFINITIONS,
    ) -> None:
        self.assets_dir = Path(assets_dir)
        self.base_url = base_url
        self._definitions = definitions
        self._widgets: dict[str, WidgetDescriptor] | None = None
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._widgets is not None

    def _read_all(self) -> dict[str, WidgetDescriptor]:
        widgets: dict[str, WidgetDescriptor] = {}
        for definition in self._definitions:
            path = find_widget_markup(self.assets_dir, definition.id)
            markup = inject_runtime_config(
                path.read_text(encoding="utf-8"), self.base_url
            )
            widgets[definition.id] = WidgetDescriptor(
                id=definition.id,
                title=definition.title,
                template_uri=definition.template_uri,
                invoking_text=definition.invoking_text,
                invoked_text=definition.invoked_text,
                markup=markup,
            )
            logger.info(
                "Loaded widget markup",
                extra={"widget_id": definition.id, "path": str(path)},
            )
        return widgets

    async def load(self) -> None:
        """
        Load every widget's markup if not already loaded.

        Raises:
            WidgetAssetError: If any widget artifact is missing.
        """
        if self._widgets is not None:
            return

        async with self._lock:
            if self._widgets is not None:
                return
            loop = asyncio.get_running_loop()
            self._widgets = await loop.run_in_executor(None, self._read_all)

    def get(self, widget_id: str) -> WidgetDescriptor:
        """
        Return a loaded widget.

        Raises:
            RuntimeError: If load() has not completed.
            KeyError: If the widget id is not defined.
        """
        if self._widgets is None:
            raise RuntimeError("Widget registry used before load()")
        return self._widgets[widget_id]

    async def resolve(self, widget_id: str) -> WidgetDescriptor:
        """Load on first use, then return the widget."""
        await self.load()
        return self.get(widget_id)

    def all(self) -> list[WidgetDescriptor]:
        """Return all loaded widgets in definition order."""
        return [self.get(definition.id) for definition in self._definitions]
