"""Single-call JSON-RPC transport over streamable HTTP."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Literal, Protocol, cast
from uuid import uuid4

import httpx

from mcprelay.config import Settings
from mcprelay.mcp.credentials import resolve_credentials
from mcprelay.models.server import TargetServer

type JSONValue = None | bool | int | float | str | list[JSONValue] | dict[str, JSONValue]
type JSONObject = dict[str, JSONValue]
type ErrorCategory = Literal[
    "network_timeout",
    "http_status",
    "invalid_payload",
    "rpc_error",
    "transport_error",
]

ACCEPT = "application/json, text/event-stream"
SESSION_RESPONSE_HEADER = "mcp-session-id"


class MCPTransportError(RuntimeError):
    """Transport failure with explicit category."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.status_code = status_code


class MCPProtocolError(MCPTransportError):
    """Server answered with a JSON-RPC ``error`` envelope."""

    def __init__(self, message: str) -> None:
        super().__init__(f"MCP error: {message}", category="rpc_error")


@dataclass(slots=True)
class RPCResponse:
    """Normalized outcome of one JSON-RPC call."""

    result: JSONValue
    session_id: str | None = None


class RPCTransport(Protocol):
    """Async transport protocol for one MCP JSON-RPC call."""

    async def request(
        self,
        server: TargetServer,
        method: str,
        params: JSONObject | None = None,
        session_id: str | None = None,
    ) -> RPCResponse:
        """Send ``method`` to ``server`` and return its normalized result."""


def build_request(method: str, params: JSONObject | None = None) -> JSONObject:
    return {
        "jsonrpc": "2.0",
        "id": str(uuid4()),
        "method": method,
        "params": params or {},
    }


def extract_error(envelope: JSONObject) -> str | None:
    error_payload = envelope.get("error")
    if error_payload is None:
        return None
    if isinstance(error_payload, dict):
        message = error_payload.get("message")
        if isinstance(message, str):
            return message
        code = error_payload.get("code")
        return f"code={code}"
    return str(error_payload)


class EventStreamReader:
    """Accumulate ``data:`` lines and parse one envelope per blank-line boundary.

    Malformed buffers are skipped. A well-formed envelope carrying ``error``
    fails immediately. The last ``result`` seen wins.
    """

    def __init__(self) -> None:
        self._buffer: list[str] = []
        self.result: JSONValue = None

    def feed(self, line: str) -> None:
        if line.startswith("data:"):
            data = line[5:]
            if data.startswith(" "):
                data = data[1:]
            self._buffer.append(data)
        elif not line.strip():
            self._flush()

    def finish(self) -> JSONValue:
        self._flush()
        return self.result

    def _flush(self) -> None:
        if not self._buffer:
            return
        raw = "\n".join(self._buffer)
        self._buffer = []
        try:
            envelope = json.loads(raw)
        except ValueError:
            return
        if not isinstance(envelope, dict):
            return
        message = extract_error(envelope)
        if message is not None:
            raise MCPProtocolError(message)
        if "result" in envelope:
            self.result = envelope["result"]


async def read_event_stream(lines: AsyncIterator[str]) -> JSONValue:
    reader = EventStreamReader()
    async for line in lines:
        reader.feed(line)
    return reader.finish()


class JSONRPCTransport:
    """Send one JSON-RPC request and normalize JSON or SSE replies."""

    def __init__(
        self,
        settings: Settings,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._client = client

    async def request(
        self,
        server: TargetServer,
        method: str,
        params: JSONObject | None = None,
        session_id: str | None = None,
    ) -> RPCResponse:
        resolved = resolve_credentials(server, self._settings, session_id)
        headers = {
            **resolved.headers,
            "Content-Type": "application/json",
            "Accept": ACCEPT,
        }
        payload = build_request(method, params)

        try:
            async with self._http_client() as client:
                async with client.stream(
                    "POST",
                    resolved.url,
                    json=payload,
                    headers=headers,
                ) as response:
                    result = await self._read_result(response)
                    returned_session = response.headers.get(SESSION_RESPONSE_HEADER)
        except httpx.TimeoutException as exc:
            message = str(exc) or "request timed out"
            raise MCPTransportError(message, category="network_timeout") from exc
        except httpx.HTTPError as exc:
            raise MCPTransportError(str(exc), category="transport_error") from exc

        return RPCResponse(result=result, session_id=returned_session or session_id)

    @asynccontextmanager
    async def _http_client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self._settings.request_timeout_seconds) as client:
            yield client

    async def _read_result(self, response: httpx.Response) -> JSONValue:
        if response.status_code >= 400:
            body = (await response.aread()).decode("utf-8", errors="replace").strip()
            message = f"http status {response.status_code}"
            if body:
                message = f"{message}: {body[:500]}"
            raise MCPTransportError(
                message,
                category="http_status",
                status_code=response.status_code,
            )

        content_type = response.headers.get("content-type", "").lower()
        if "text/event-stream" in content_type:
            return await read_event_stream(response.aiter_lines())

        body = await response.aread()
        if response.status_code == httpx.codes.ACCEPTED and not body.strip():
            return None
        if "application/json" not in content_type:
            msg = f"Unsupported MCP response content type: {content_type or 'missing'}"
            raise MCPTransportError(msg, category="invalid_payload")
        if not body.strip():
            return None

        try:
            envelope = json.loads(body)
        except ValueError as exc:
            msg = "Invalid JSON-RPC response payload"
            raise MCPTransportError(msg, category="invalid_payload") from exc
        if not isinstance(envelope, dict):
            msg = "Invalid JSON-RPC response payload"
            raise MCPTransportError(msg, category="invalid_payload")

        message = extract_error(cast(JSONObject, envelope))
        if message is not None:
            raise MCPProtocolError(message)
        return cast(JSONValue, envelope.get("result"))
