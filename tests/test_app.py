"""
Tests for the Starlette application.

This test module validates:
- /health
- The /mcp endpoint over HTTP (POST, notifications, GET/DELETE, protocol version)
- Origin enforcement and CORS headers, including preflight
- Startup warm-up through the lifespan
- Cancellation and release when the client disconnects mid-request
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from starlette.testclient import TestClient
from starlette.types import Message, Scope

from mcp_hr.app import MCP_PATH, OriginAccessMiddleware, create_app
from mcp_hr.catalog import NoArguments, ToolResult, ToolSpec
from mcp_hr.config import AppConfig
from mcp_hr.errors import WidgetAssetError
from mcp_hr.session import RequestScope, RequestState, StatelessSessionManager
from mcp_hr.store import SQLiteEntityStore
from mcp_hr.widgets import WidgetRegistry

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def app_config(clean_env: None) -> AppConfig:
    return AppConfig(
        server={"port": 3978, "public_base_url": "https://hr-tunnel.example.net"},
        cors={"additional_origins": ["https://partner.example"]},
    )


@pytest.fixture
def client(
    app_config: AppConfig,
    widget_registry: WidgetRegistry,
    entity_store: SQLiteEntityStore,
) -> Iterator[TestClient]:
    app = create_app(app_config, widgets=widget_registry, store=entity_store)
    with TestClient(app) as test_client:
        yield test_client


def _rpc(method: str, params: dict[str, Any] | None = None, request_id: Any = 1) -> dict[str, Any]:
    message: dict[str, Any] = {"jsonrpc": "2.0", "method": method, "params": params or {}}
    if request_id is not None:
        message["id"] = request_id
    return message


# =============================================================================
# Health
# =============================================================================


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "server": "trey-hr-consultant",
        "transport": "streamable-http",
    }


# =============================================================================
# MCP endpoint
# =============================================================================


class TestMcpEndpoint:
    """Tests for /mcp over HTTP."""

    def test_initialize(self, client: TestClient) -> None:
        response = client.post(
            MCP_PATH, json=_rpc("initialize", {"protocolVersion": "2025-06-18"})
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        result = response.json()["result"]
        assert result["protocolVersion"] == "2025-06-18"
        assert result["serverInfo"]["name"] == "trey-hr-consultant"

    def test_list_tools(self, client: TestClient) -> None:
        response = client.post(MCP_PATH, json=_rpc("tools/list"))

        assert response.status_code == 200
        names = [t["name"] for t in response.json()["result"]["tools"]]
        assert "show-hr-dashboard" in names
        assert len(names) == 7

    def test_call_dashboard(self, client: TestClient) -> None:
        response = client.post(
            MCP_PATH,
            json=_rpc("tools/call", {"name": "show-hr-dashboard", "arguments": {}}),
        )

        result = response.json()["result"]
        assert result["content"][0]["text"] == (
            "HR Dashboard: 3 consultants, 2 projects, 70 billable hours forecasted."
        )
        assert result["_meta"]["openai/outputTemplate"] == "ui://widget/hr-dashboard.html"

    def test_read_widget_resource(self, client: TestClient) -> None:
        response = client.post(
            MCP_PATH,
            json=_rpc("resources/read", {"uri": "ui://widget/hr-dashboard.html"}),
        )

        (content,) = response.json()["result"]["contents"]
        assert content["mimeType"] == "text/html+skybridge"
        assert (
            'window.__SERVER_BASE_URL__="https://hr.example.com"' in content["text"]
        )

    def test_invalid_arguments(self, client: TestClient) -> None:
        response = client.post(
            MCP_PATH,
            json=_rpc("tools/call", {"name": "show-project-details", "arguments": {}}),
        )

        assert response.status_code == 200
        assert response.json()["error"]["code"] == -32602

    def test_notification_accepted(self, client: TestClient) -> None:
        response = client.post(
            MCP_PATH, json=_rpc("notifications/initialized", request_id=None)
        )

        assert response.status_code == 202
        assert response.content == b""

    def test_malformed_body(self, client: TestClient) -> None:
        response = client.post(
            MCP_PATH, content=b"{nope", headers={"content-type": "application/json"}
        )

        assert response.status_code == 200
        assert response.json()["error"]["code"] == -32700

    @pytest.mark.parametrize("method", ["GET", "DELETE"])
    def test_method_not_allowed(self, client: TestClient, method: str) -> None:
        response = client.request(method, MCP_PATH)

        assert response.status_code == 405
        assert response.headers["allow"] == "POST"
        assert response.json()["error"] == {"code": -32000, "message": "Method not allowed."}

    def test_unsupported_protocol_version(self, client: TestClient) -> None:
        response = client.post(
            MCP_PATH,
            json=_rpc("tools/list"),
            headers={"mcp-protocol-version": "1999-01-01"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == -32600

    def test_no_session_header(self, client: TestClient) -> None:
        response = client.post(MCP_PATH, json=_rpc("ping"))
        assert "mcp-session-id" not in response.headers


# =============================================================================
# Origins and CORS
# =============================================================================


class TestOriginAccess:
    """Tests for origin enforcement."""

    @pytest.mark.parametrize(
        "origin",
        [
            "https://chatgpt.com",
            "https://hr-tunnel.example.net",
            "https://partner.example",
            "vscode-webview://abc123",
            "http://localhost:5173",
        ],
    )
    def test_allowed_origin_reflected(self, client: TestClient, origin: str) -> None:
        response = client.post(MCP_PATH, json=_rpc("ping"), headers={"origin": origin})

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == origin
        assert response.headers["access-control-expose-headers"] == "Mcp-Session-Id"
        assert response.headers["vary"] == "Origin"

    @pytest.mark.parametrize(
        "origin", ["https://evil.example", "https://chatgpt.com.evil.net"]
    )
    def test_disallowed_origin_rejected(self, client: TestClient, origin: str) -> None:
        response = client.post(MCP_PATH, json=_rpc("ping"), headers={"origin": origin})

        assert response.status_code == 403
        assert response.content == b""
        assert "access-control-allow-origin" not in response.headers

    def test_disallowed_origin_on_health(self, client: TestClient) -> None:
        response = client.get("/health", headers={"origin": "https://evil.example"})
        assert response.status_code == 403

    def test_no_origin_allowed_without_cors(self, client: TestClient) -> None:
        response = client.post(MCP_PATH, json=_rpc("ping"))

        assert response.status_code == 200
        assert "access-control-allow-origin" not in response.headers

    def test_null_origin_allowed(self, client: TestClient) -> None:
        response = client.post(MCP_PATH, json=_rpc("ping"), headers={"origin": "null"})
        assert response.status_code == 200

    def test_preflight(self, client: TestClient) -> None:
        response = client.options(
            MCP_PATH,
            headers={
                "origin": "https://chat.chatgpt.com",
                "access-control-request-method": "POST",
            },
        )

        assert response.status_code == 204
        assert response.headers["access-control-allow-origin"] == "https://chat.chatgpt.com"
        assert "POST" in response.headers["access-control-allow-methods"]
        assert "Mcp-Protocol-Version" in response.headers["access-control-allow-headers"]

    def test_preflight_disallowed(self, client: TestClient) -> None:
        response = client.options(
            MCP_PATH,
            headers={
                "origin": "https://evil.example",
                "access-control-request-method": "POST",
            },
        )

        assert response.status_code == 403

    def test_cors_headers_helper(self) -> None:
        assert OriginAccessMiddleware.cors_headers(None) == {}
        assert OriginAccessMiddleware.cors_headers("https://a.example")[
            "Access-Control-Allow-Origin"
        ] == "https://a.example"


# =============================================================================
# Startup
# =============================================================================


class TestLifespan:
    """Tests for startup warm-up."""

    def test_store_tables_created(
        self, app_config: AppConfig, widget_registry: WidgetRegistry, tmp_path: Path
    ) -> None:
        db_path = tmp_path / "fresh" / "hr.db"
        app = create_app(
            app_config, widgets=widget_registry, store=SQLiteEntityStore(db_path)
        )

        with TestClient(app) as test_client:
            assert widget_registry.loaded
            response = test_client.post(
                MCP_PATH,
                json=_rpc("tools/call", {"name": "show-bulk-editor", "arguments": {}}),
            )

        assert db_path.exists()
        result = response.json()["result"]
        assert result["content"][0]["text"] == "Bulk editor loaded with 0 consultant records."

    def test_missing_widgets_fail_startup(
        self, app_config: AppConfig, tmp_path: Path, entity_store: SQLiteEntityStore
    ) -> None:
        registry = WidgetRegistry(tmp_path / "missing", base_url="http://localhost:3978")
        app = create_app(app_config, widgets=registry, store=entity_store)

        with pytest.raises(WidgetAssetError):
            with TestClient(app):
                pass

    def test_unreachable_store_still_serves_discovery(
        self, app_config: AppConfig, widget_registry: WidgetRegistry, tmp_path: Path
    ) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        app = create_app(
            app_config,
            widgets=widget_registry,
            store=SQLiteEntityStore(blocker / "hr.db"),
        )

        with TestClient(app) as test_client:
            listed = test_client.post(MCP_PATH, json=_rpc("tools/list"))
            called = test_client.post(
                MCP_PATH,
                json=_rpc("tools/call", {"name": "show-hr-dashboard", "arguments": {}}),
            )

        assert listed.status_code == 200
        error = json.loads(called.content)["error"]
        assert error["data"]["error_code"] == "unavailable"


# =============================================================================
# Client disconnect
# =============================================================================


class TestClientDisconnect:
    """Tests for a client leaving while its request is still running."""

    @pytest.mark.asyncio
    async def test_disconnect_cancels_handler_and_releases_scope(
        self,
        app_config: AppConfig,
        widget_registry: WidgetRegistry,
        entity_store: SQLiteEntityStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        started = asyncio.Event()
        seen: dict[str, Any] = {"cancelled": False}

        async def slow_handler(_args: NoArguments, store: Any) -> ToolResult:
            seen["store"] = store
            started.set()
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                seen["cancelled"] = True
                raise
            return ToolResult(summary="finished")

        slow_report = ToolSpec(
            name="slow-report",
            title="Slow Report",
            description="Never finishes on its own.",
            arguments=NoArguments,
            handler=slow_handler,
        )
        app = create_app(
            app_config, widgets=widget_registry, store=entity_store, specs=[slow_report]
        )

        manager: StatelessSessionManager = app.state.session_manager
        scopes: list[RequestScope] = []
        open_scope = manager.open_scope

        def tracking_open_scope() -> RequestScope:
            request_scope = open_scope()
            scopes.append(request_scope)
            return request_scope

        monkeypatch.setattr(manager, "open_scope", tracking_open_scope)

        body = json.dumps(
            _rpc("tools/call", {"name": "slow-report", "arguments": {}})
        ).encode("utf-8")
        body_sent = False

        async def receive() -> Message:
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": body, "more_body": False}
            await started.wait()
            return {"type": "http.disconnect"}

        sent: list[Message] = []

        async def send(message: Message) -> None:
            sent.append(message)

        scope: Scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "POST",
            "scheme": "http",
            "path": MCP_PATH,
            "raw_path": MCP_PATH.encode("ascii"),
            "root_path": "",
            "query_string": b"",
            "headers": [
                (b"host", b"testserver"),
                (b"content-type", b"application/json"),
            ],
            "client": ("127.0.0.1", 50000),
            "server": ("testserver", 80),
        }

        await asyncio.wait_for(app(scope, receive, send), timeout=5)

        assert sent[0]["type"] == "http.response.start"
        assert sent[0]["status"] == 499
        assert seen["cancelled"] is True

        (request_scope,) = scopes
        assert request_scope.state is RequestState.ABORTED
        assert request_scope.released
        assert seen["store"].closed
        assert seen["store"].idle
