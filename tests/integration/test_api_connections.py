from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from mcprelay.api.app import create_app
from mcprelay.api.deps import get_connection_manager, get_identity_verifier
from mcprelay.config import Settings
from mcprelay.core.cache import InMemoryCache
from mcprelay.core.connection_manager import ConnectionManager
from mcprelay.db.store import SQLiteStore
from mcprelay.errors import ProviderError
from mcprelay.mcp.transport import RPCResponse
from mcprelay.models.server import ManagedServer, TargetServer
from tests.support.relay_fakes import FakeProvider, ScriptedTransport, StaticVerifier, StepClock

AUTH = {"Authorization": "Bearer user-token"}


class DownProvider(FakeProvider):
    async def put_connection(self, *_: Any, **__: Any) -> dict[str, Any]:
        msg = "Smithery connection failed: upstream unavailable"
        raise ProviderError(msg, upstream_status=503)


def _client(
    tmp_path: Path,
    provider: FakeProvider | None = None,
    transport: ScriptedTransport | None = None,
) -> tuple[TestClient, FakeProvider]:
    fake = provider or FakeProvider(namespaces=["n4-app"])
    manager = ConnectionManager(
        store=SQLiteStore(tmp_path / "relay.db"),
        provider=fake,  # type: ignore[arg-type]
        transport=transport or ScriptedTransport(),
        namespaces=InMemoryCache(),
        settings=Settings(_env_file=None),
        clock=StepClock(),
    )
    app = create_app()
    app.dependency_overrides[get_connection_manager] = lambda: manager
    app.dependency_overrides[get_identity_verifier] = lambda: StaticVerifier()
    return TestClient(app), fake


def _create(client: TestClient, name: str = "Notes") -> dict[str, Any]:
    response = client.post(
        "/api/v1/connections?action=create",
        headers=AUTH,
        json={"mcpUrl": f"https://mcp.example/{name.lower()}", "displayName": name},
    )
    assert response.status_code == 200
    return response.json()


def test_missing_authorization_is_rejected(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)

    response = client.post("/api/v1/connections?action=list", json={})

    assert response.status_code == 401
    assert response.json() == {"error": "Missing authorization header"}


def test_invalid_token_is_rejected(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)

    response = client.post(
        "/api/v1/connections?action=list",
        headers={"Authorization": "Bearer stolen"},
        json={},
    )

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid user token"}


def test_unknown_action_is_rejected(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)

    response = client.post("/api/v1/connections?action=explode", headers=AUTH, json={})

    assert response.status_code == 400
    assert response.json() == {"error": "Unknown action: explode"}


def test_create_requires_fields(tmp_path: Path) -> None:
    client, provider = _client(tmp_path)

    response = client.post(
        "/api/v1/connections?action=create",
        headers=AUTH,
        json={"mcpUrl": "https://mcp.example/notes"},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "mcpUrl and displayName are required"}
    assert provider.put_calls == []


def test_create_list_and_remove_lifecycle(tmp_path: Path) -> None:
    client, provider = _client(tmp_path)

    created = _create(client)
    assert created["status"] == "connected"
    assert created["connectionId"].startswith("user-1-")

    listed = client.post("/api/v1/connections?action=list", headers=AUTH, json={})
    assert listed.status_code == 200
    connections = listed.json()["connections"]
    assert [row["connectionId"] for row in connections] == [created["connectionId"]]
    assert connections[0]["displayName"] == "Notes"
    assert connections[0]["namespace"] == "n4-app"

    removed = client.post(
        "/api/v1/connections?action=remove",
        headers=AUTH,
        json={"connectionId": created["connectionId"]},
    )
    assert removed.json() == {"success": True}
    assert provider.deleted == [("n4-app", created["connectionId"])]

    after = client.post("/api/v1/connections?action=list", headers=AUTH)
    assert after.json() == {"connections": []}


def test_retry_and_verify_report_provider_status(tmp_path: Path) -> None:
    client, provider = _client(tmp_path)
    created = _create(client)
    connection_id = created["connectionId"]

    provider.get_payloads[connection_id] = {
        "status": "auth_required",
        "authorizationUrl": "https://auth.example/approve",
    }
    retried = client.post(
        "/api/v1/connections?action=retry",
        headers=AUTH,
        json={"connectionId": connection_id},
    )
    assert retried.json() == {
        "connectionId": connection_id,
        "status": "auth_required",
        "authorizationUrl": "https://auth.example/approve",
    }

    provider.get_payloads[connection_id] = {"status": "connected"}
    verified = client.post(
        "/api/v1/connections?action=verify",
        headers=AUTH,
        json={"connectionId": connection_id},
    )
    assert verified.json()["status"] == "connected"


def test_retry_requires_connection_id(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)

    response = client.post("/api/v1/connections?action=retry", headers=AUTH, json={})

    assert response.status_code == 400
    assert response.json() == {"error": "connectionId is required"}


def test_list_tools_and_token(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    created = _create(client)

    tools = client.post("/api/v1/connections?action=list-tools", headers=AUTH, json={})
    assert tools.status_code == 200
    assert tools.json() == {
        "tools": [],
        "servers": [
            {"connectionId": created["connectionId"], "displayName": "Notes", "toolCount": 0}
        ],
    }

    token = client.post("/api/v1/connections?action=token", headers=AUTH, json={})
    assert token.json() == {
        "token": "scoped-token",
        "expiresAt": "2026-01-01T01:00:00Z",
        "message": None,
    }


def test_token_without_connections(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)

    response = client.post("/api/v1/connections?action=token", headers=AUTH, json={})

    assert response.json() == {
        "token": None,
        "expiresAt": None,
        "message": "No active Smithery connections",
    }


def test_provider_failure_surfaces_as_bad_gateway(
    tmp_path: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    client, _ = _client(tmp_path, DownProvider(namespaces=["n4-app"]))

    response = client.post(
        "/api/v1/connections?action=create",
        headers=AUTH,
        json={"mcpUrl": "https://mcp.example/notes", "displayName": "Notes"},
    )

    assert response.status_code == 502
    assert response.json() == {"error": "Smithery connection failed: upstream unavailable"}
    assert "provider answered 503" in caplog.text


def test_list_tools_survives_a_server_with_malformed_schema(tmp_path: Path) -> None:
    odd_ids: set[str] = set()

    def tools(server: TargetServer, *_: object) -> RPCResponse:
        assert isinstance(server, ManagedServer)
        if server.connection_id in odd_ids:
            return RPCResponse(result={"tools": [{"name": "weird", "inputSchema": True}]})
        return RPCResponse(result={"tools": [{"name": "search", "description": "Search"}]})

    client, _ = _client(tmp_path, transport=ScriptedTransport(tools))
    odd_ids.add(_create(client, "Odd")["connectionId"])
    _create(client, "Good")

    response = client.post("/api/v1/connections?action=list-tools", headers=AUTH, json={})

    assert response.status_code == 200
    names = {tool["name"]: tool["inputSchema"] for tool in response.json()["tools"]}
    assert names == {
        "weird": {"type": "object", "properties": {}},
        "search": {"type": "object", "properties": {}},
    }
