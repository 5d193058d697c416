"""Tool invocation with result normalization and audit logging."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Literal

import httpx

from mcprelay.core.outcome import attempt
from mcprelay.db.store import SQLiteStore
from mcprelay.mcp.session import SessionManager
from mcprelay.mcp.transport import JSONObject, JSONValue, MCPTransportError, RPCTransport
from mcprelay.models.connection import ToolCallLogEntry
from mcprelay.models.server import ServerDescriptor, classify

logger = logging.getLogger(__name__)


def _dump(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def normalize_result(result: JSONValue) -> str:
    """Render a ``tools/call`` result as plain text.

    ``content`` parts are joined by newlines using each part's text, or the
    part's JSON when it has none. Anything else is stringified.
    """
    if isinstance(result, dict):
        content = result.get("content")
        if isinstance(content, list):
            rendered: list[str] = []
            for part in content:
                text = part.get("text") if isinstance(part, dict) else None
                rendered.append(text if isinstance(text, str) and text else _dump(part))
            return "\n".join(rendered)
    if isinstance(result, str):
        return result
    return _dump(result)


class ToolExecutor:
    """Execute one tool call and always answer with a string."""

    def __init__(
        self,
        *,
        transport: RPCTransport,
        sessions: SessionManager,
        store: SQLiteStore,
    ) -> None:
        self._transport = transport
        self._sessions = sessions
        self._store = store

    async def execute(
        self,
        descriptor: ServerDescriptor,
        tool_name: str,
        arguments: dict[str, Any] | None = None,
    ) -> str:
        """Invoke ``tool_name`` and return its text or ``Error: <message>``."""
        arguments = arguments or {}
        started = time.perf_counter()
        try:
            text = await self._call(descriptor, tool_name, arguments)
        except Exception as exc:  # noqa: BLE001
            message = str(exc) or type(exc).__name__
            await self._record(descriptor, tool_name, arguments, "error", message, started)
            return f"Error: {message}"

        await self._record(descriptor, tool_name, arguments, "success", text, started)
        return text

    async def _call(
        self,
        descriptor: ServerDescriptor,
        tool_name: str,
        arguments: dict[str, Any],
    ) -> str:
        server = classify(descriptor)
        session_id = await self._sessions.acquire(server)
        params: JSONObject = {"name": tool_name, "arguments": arguments}
        try:
            response = await self._transport.request(server, "tools/call", params, session_id)
        except MCPTransportError as exc:
            if session_id is not None and exc.status_code == httpx.codes.NOT_FOUND:
                self._sessions.invalidate(server, session_id)
            raise
        return normalize_result(response.result)

    async def _record(
        self,
        descriptor: ServerDescriptor,
        tool_name: str,
        arguments: dict[str, Any],
        status: Literal["success", "error"],
        result: str,
        started: float,
    ) -> None:
        entry = ToolCallLogEntry.truncated(
            tool_name=tool_name,
            server_url=descriptor.url,
            server_config=descriptor.config,
            arguments=arguments,
            status=status,
            result=result,
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
        written = await attempt(self._store.append_tool_call_log(entry))
        written.log_if_failed(logger, "failed to write tool call log for %s", tool_name)
