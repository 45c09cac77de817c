"""
Tests for the widget registry.

This test module validates:
- Markup lookup (exact file, content-hashed fallback, missing artifact)
- Runtime configuration injection
- Load-once caching under concurrent first access
- Widget metadata
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest

from mcp_hr.errors import WidgetAssetError
from mcp_hr.widgets import (
    DASHBOARD_WIDGET_ID,
    WIDGET_DEFINITIONS,
    WidgetDefinition,
    WidgetRegistry,
    find_widget_markup,
    inject_runtime_config,
)

BASE_URL = "https://hr.example.com"

# =============================================================================
# Markup Lookup
# =============================================================================


class TestFindWidgetMarkup:
    """Tests for locating widget artifacts."""

    def test_exact_file(self, assets_dir: Path) -> None:
        assert find_widget_markup(assets_dir, "hr-dashboard") == assets_dir / "hr-dashboard.html"

    def test_exact_file_preferred_over_hashed(self, assets_dir: Path) -> None:
        (assets_dir / "hr-dashboard-zzzz.html").write_text("<html></html>")

        assert find_widget_markup(assets_dir, "hr-dashboard").name == "hr-dashboard.html"

    def test_hashed_fallback_picks_last(self, tmp_path: Path) -> None:
        for name in ("foo-1a2b.html", "foo-9f8e.html", "foo-5c5c.html", "foo-zz.css"):
            (tmp_path / name).write_text("<html></html>")

        assert find_widget_markup(tmp_path, "foo").name == "foo-9f8e.html"

    def test_hashed_fallback_ignores_other_widgets(self, tmp_path: Path) -> None:
        (tmp_path / "foobar.html").write_text("<html></html>")

        with pytest.raises(WidgetAssetError):
            find_widget_markup(tmp_path, "foo")

    def test_missing_widget(self, tmp_path: Path) -> None:
        with pytest.raises(WidgetAssetError) as exc_info:
            find_widget_markup(tmp_path, "foo")

        assert exc_info.value.widget_id == "foo"
        assert exc_info.value.assets_dir == str(tmp_path)

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(WidgetAssetError, match="Build the widgets first"):
            find_widget_markup(tmp_path / "nope", "foo")


# =============================================================================
# Runtime Configuration Injection
# =============================================================================


class TestInjectRuntimeConfig:
    """Tests for inject_runtime_config."""

    def test_inserted_after_html_tag(self) -> None:
        markup = '<!DOCTYPE html><html lang="en"><head></head></html>'

        result = inject_runtime_config(markup, "https://hr.example.com")

        assert result == (
            '<!DOCTYPE html><html lang="en">'
            '<script>window.__SERVER_BASE_URL__="https://hr.example.com";</script>'
            "<head></head></html>"
        )

    def test_only_first_html_tag(self) -> None:
        markup = "<html><body><pre><html></pre></body></html>"

        result = inject_runtime_config(markup, "http://x")

        assert result.count("__SERVER_BASE_URL__") == 1
        assert result.startswith("<html><script>")

    def test_uppercase_tag(self) -> None:
        result = inject_runtime_config("<HTML><body></body></HTML>", "http://x")
        assert result.startswith('<HTML><script>window.__SERVER_BASE_URL__="http://x";')

    def test_no_html_tag_prepends(self) -> None:
        result = inject_runtime_config("<div></div>", "http://x")
        assert result == '<script>window.__SERVER_BASE_URL__="http://x";</script><div></div>'

    def test_does_not_match_htmlx_tags(self) -> None:
        result = inject_runtime_config("<htmlx></htmlx>", "http://x")
        assert result.startswith("<script>")

    def test_value_is_escaped(self) -> None:
        result = inject_runtime_config("<html></html>", 'http://x/"</script><b>')

        assert "</script><b>" not in result
        assert '\\"' in result


# =============================================================================
# Registry
# =============================================================================


class TestWidgetRegistry:
    """Tests for WidgetRegistry."""

    @pytest.mark.asyncio
    async def test_load_all_widgets(self, widget_registry: WidgetRegistry) -> None:
        await widget_registry.load()

        assert widget_registry.loaded
        assert [w.id for w in widget_registry.all()] == [d.id for d in WIDGET_DEFINITIONS]

    @pytest.mark.asyncio
    async def test_markup_carries_base_url(self, widget_registry: WidgetRegistry) -> None:
        widget = await widget_registry.resolve(DASHBOARD_WIDGET_ID)

        assert f'window.__SERVER_BASE_URL__="{BASE_URL}"' in widget.markup
        assert '<div id="hr-dashboard">' in widget.markup

    def test_get_before_load(self, widget_registry: WidgetRegistry) -> None:
        with pytest.raises(RuntimeError):
            widget_registry.get(DASHBOARD_WIDGET_ID)

    @pytest.mark.asyncio
    async def test_unknown_widget(self, loaded_registry: WidgetRegistry) -> None:
        with pytest.raises(KeyError):
            loaded_registry.get("no-such-widget")

    @pytest.mark.asyncio
    async def test_missing_artifact_is_fatal(self, tmp_path: Path) -> None:
        registry = WidgetRegistry(
            tmp_path,
            base_url=BASE_URL,
            definitions=(
                WidgetDefinition(
                    id="foo",
                    title="Foo",
                    template_uri="ui://widget/foo.html",
                    invoking_text="Loading…",
                    invoked_text="Ready",
                ),
            ),
        )

        with pytest.raises(WidgetAssetError):
            await registry.resolve("foo")
        assert not registry.loaded

    @pytest.mark.asyncio
    async def test_concurrent_first_access_loads_once(
        self, widget_registry: WidgetRegistry
    ) -> None:
        with patch.object(
            WidgetRegistry, "_read_all", autospec=True, side_effect=WidgetRegistry._read_all
        ) as read_all:
            results = await asyncio.gather(
                *(widget_registry.resolve(DASHBOARD_WIDGET_ID) for _ in range(10))
            )

        assert read_all.call_count == 1
        assert all(r is results[0] for r in results)

    @pytest.mark.asyncio
    async def test_markup_not_reloaded(
        self, widget_registry: WidgetRegistry, assets_dir: Path
    ) -> None:
        first = await widget_registry.resolve(DASHBOARD_WIDGET_ID)
        (assets_dir / "hr-dashboard.html").write_text("<html>changed</html>")

        second = await widget_registry.resolve(DASHBOARD_WIDGET_ID)

        assert second.markup == first.markup


class TestWidgetDescriptor:
    """Tests for widget metadata."""

    @pytest.mark.asyncio
    async def test_meta(self, loaded_registry: WidgetRegistry) -> None:
        widget = loaded_registry.get(DASHBOARD_WIDGET_ID)

        assert widget.meta() == {
            "openai/outputTemplate": "ui://widget/hr-dashboard.html",
            "openai/toolInvocation/invoking": "Loading HR dashboard…",
            "openai/toolInvocation/invoked": "Dashboard ready",
            "openai/widgetAccessible": True,
        }

    @pytest.mark.asyncio
    async def test_repr_omits_markup(self, loaded_registry: WidgetRegistry) -> None:
        assert "__SERVER_BASE_URL__" not in repr(loaded_registry.get(DASHBOARD_WIDGET_ID))
