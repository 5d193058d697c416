from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable

import httpx
import pytest

from mcprelay.config import Settings
from mcprelay.mcp.transport import (
    JSONRPCTransport,
    MCPProtocolError,
    MCPTransportError,
    read_event_stream,
)
from mcprelay.models.server import GenericServer, ManagedServer

SERVER = GenericServer(url="https://tools.example.com/mcp")


def _transport(handler: Callable[[httpx.Request], httpx.Response]) -> JSONRPCTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return JSONRPCTransport(Settings(_env_file=None, smithery_api_key="sk"), client=client)


def _sse(body: str, **headers: str) -> httpx.Response:
    return httpx.Response(
        200,
        headers={"content-type": "text/event-stream", **headers},
        content=body.encode("utf-8"),
    )


async def _lines(*lines: str) -> AsyncIterator[str]:
    for line in lines:
        yield line


@pytest.mark.asyncio
async def test_json_response_returns_result_and_session_header() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = json.loads(request.content)
        return httpx.Response(
            200,
            headers={"mcp-session-id": "server-session"},
            json={"jsonrpc": "2.0", "id": body["id"], "result": {"ok": True}},
        )

    response = await _transport(handler).request(SERVER, "tools/list", {})

    assert response.result == {"ok": True}
    assert response.session_id == "server-session"
    sent = json.loads(seen[0].content)
    assert sent["jsonrpc"] == "2.0"
    assert sent["method"] == "tools/list"
    assert sent["id"]
    assert seen[0].headers["accept"] == "application/json, text/event-stream"


@pytest.mark.asyncio
async def test_session_id_is_echoed_when_server_sends_none() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": "1", "result": {}})

    response = await _transport(handler).request(SERVER, "tools/call", {}, "mine")

    assert response.session_id == "mine"
    assert seen[0].headers["mcp-session-id"] == "mine"


@pytest.mark.asyncio
async def test_json_error_envelope_raises_protocol_error() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"jsonrpc": "2.0", "id": "1", "error": {"code": -32601, "message": "boom"}},
        )

    with pytest.raises(MCPProtocolError) as exc_info:
        await _transport(handler).request(SERVER, "tools/call", {})
    assert str(exc_info.value) == "MCP error: boom"
    assert exc_info.value.category == "rpc_error"


@pytest.mark.asyncio
async def test_sse_skips_malformed_block_and_returns_last_result() -> None:
    body = (
        "event: message\n"
        'data: {"jsonrpc": "2.0", "id": \n'
        "\n"
        "event: message\n"
        'data: {"jsonrpc": "2.0", "id": "1", "result": {"content": [{"type": "text", '
        '"text": "second"}]}}\n'
        "\n"
    )

    def handler(_: httpx.Request) -> httpx.Response:
        return _sse(body)

    response = await _transport(handler).request(SERVER, "tools/call", {})

    assert response.result == {"content": [{"type": "text", "text": "second"}]}


@pytest.mark.asyncio
async def test_sse_error_envelope_fails_the_call() -> None:
    body = (
        'data: {"jsonrpc": "2.0", "id": "1", "result": {"partial": true}}\n'
        "\n"
        'data: {"jsonrpc": "2.0", "id": "1", "error": {"message": "tool exploded"}}\n'
        "\n"
    )

    def handler(_: httpx.Request) -> httpx.Response:
        return _sse(body)

    with pytest.raises(MCPProtocolError, match="tool exploded"):
        await _transport(handler).request(SERVER, "tools/call", {})


@pytest.mark.asyncio
async def test_sse_session_header_is_returned() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return _sse('data: {"result": {"v": 1}}\n\n', **{"mcp-session-id": "s-2"})

    response = await _transport(handler).request(SERVER, "initialize", {})

    assert response.result == {"v": 1}
    assert response.session_id == "s-2"


@pytest.mark.asyncio
async def test_event_stream_joins_multiline_data_and_flushes_at_end() -> None:
    result = await read_event_stream(
        _lines(
            'data: {"jsonrpc": "2.0",',
            'data:  "result": {"tools": []}}',
        )
    )
    assert result == {"tools": []}


@pytest.mark.asyncio
async def test_event_stream_without_results_returns_none() -> None:
    result = await read_event_stream(_lines(": keepalive", "", "data: not json", ""))
    assert result is None


@pytest.mark.asyncio
async def test_unsupported_content_type_is_malformed_response() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/html"}, content=b"<html/>")

    with pytest.raises(MCPTransportError) as exc_info:
        await _transport(handler).request(SERVER, "tools/call", {})
    assert exc_info.value.category == "invalid_payload"


@pytest.mark.asyncio
async def test_empty_body_with_unsupported_content_type_is_malformed_response() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/html"}, content=b"")

    with pytest.raises(MCPTransportError) as exc_info:
        await _transport(handler).request(SERVER, "tools/call", {})
    assert exc_info.value.category == "invalid_payload"


@pytest.mark.asyncio
async def test_accepted_without_body_has_no_result() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(202)

    response = await _transport(handler).request(SERVER, "notifications/initialized", {}, "s")

    assert response.result is None
    assert response.session_id == "s"


@pytest.mark.asyncio
async def test_http_error_status_is_categorized() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="unauthorized")

    with pytest.raises(MCPTransportError) as exc_info:
        await _transport(handler).request(SERVER, "tools/call", {})
    assert exc_info.value.category == "http_status"
    assert "401" in str(exc_info.value)
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_network_failure_is_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(MCPTransportError) as exc_info:
        await _transport(handler).request(SERVER, "tools/call", {})
    assert exc_info.value.category == "transport_error"


@pytest.mark.asyncio
async def test_managed_server_posts_to_relay_endpoint() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": "1", "result": {"tools": []}})

    server = ManagedServer(url="smithery://n4-app/c-1", namespace="n4-app", connection_id="c-1")
    await _transport(handler).request(server, "tools/list", {}, "ignored")

    assert str(seen[0].url) == "https://api.smithery.ai/connect/n4-app/c-1/mcp"
    assert seen[0].headers["authorization"] == "Bearer sk"
    assert "mcp-session-id" not in seen[0].headers
