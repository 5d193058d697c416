"""Protocol session handshake and caching."""

from __future__ import annotations

import logging
from uuid import uuid4

from mcprelay.core.cache import KeyValueCache
from mcprelay.core.outcome import attempt
from mcprelay.mcp.transport import JSONObject, RPCTransport
from mcprelay.models.server import ManagedServer, TargetServer

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
CLIENT_INFO: JSONObject = {"name": "mcprelay", "version": "0.1.0"}


class SessionManager:
    """Run the ``initialize`` handshake once per session key.

    Two concurrent first calls for the same key may both handshake; the last
    one to finish wins the cache slot.
    """

    def __init__(self, transport: RPCTransport, cache: KeyValueCache) -> None:
        self._transport = transport
        self._cache = cache

    async def acquire(self, server: TargetServer) -> str | None:
        """Return the session id for ``server``, handshaking on first use."""
        if isinstance(server, ManagedServer):
            return None

        existing = self._cache.get(server.session_key)
        if existing is not None:
            return existing

        response = await self._transport.request(
            server,
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "clientInfo": CLIENT_INFO,
            },
        )
        session_id = response.session_id or str(uuid4())
        self._cache.put(server.session_key, session_id)
        logger.debug("initialized MCP session for %s", server.url)

        notified = await attempt(
            self._transport.request(server, "notifications/initialized", {}, session_id)
        )
        notified.log_if_failed(logger, "initialized notification failed for %s", server.url)
        return session_id

    def invalidate(self, server: TargetServer, session_id: str) -> None:
        """Forget ``session_id`` so the next call to ``server`` handshakes again."""
        if isinstance(server, ManagedServer):
            return
        if self._cache.get(server.session_key) == session_id:
            self._cache.delete(server.session_key)
            logger.info("MCP session for %s was invalidated by the server", server.url)
