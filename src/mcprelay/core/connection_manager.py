"""Managed connection lifecycle mirrored from the provider."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from mcprelay.config import Settings
from mcprelay.core.cache import KeyValueCache
from mcprelay.core.identity import CallerIdentity
from mcprelay.core.outcome import attempt
from mcprelay.core.provider import (
    ConnectionState,
    ProviderPayload,
    SmitheryClient,
    parse_connection_state,
)
from mcprelay.db.store import SQLiteStore
from mcprelay.errors import ConfigurationError, InputError
from mcprelay.mcp.transport import RPCTransport
from mcprelay.models.connection import ConnectionStatus, ManagedConnection
from mcprelay.models.server import MANAGED_SCHEME, ManagedServer

logger = logging.getLogger(__name__)

NAMESPACE_CACHE_KEY = "smithery:namespace"
TOKEN_TTL_SECONDS = 3600
DEFAULT_INPUT_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}

CONNECTED = ConnectionStatus.CONNECTED.value
AUTH_REQUIRED = ConnectionStatus.AUTH_REQUIRED.value


@dataclass(slots=True)
class CreateConnectionResult:
    connection_id: str
    status: str
    authorization_url: str | None
    server_info: ProviderPayload | None


@dataclass(slots=True)
class ConnectionStatusResult:
    connection_id: str
    status: str
    authorization_url: str | None


@dataclass(slots=True)
class RemoteTool:
    """One tool exposed by a connected managed server."""

    name: str
    description: str
    input_schema: dict[str, Any]
    server_name: str
    connection_id: str


@dataclass(slots=True)
class ServerToolSummary:
    connection_id: str
    display_name: str
    tool_count: int


@dataclass(slots=True)
class ToolListing:
    tools: list[RemoteTool] = field(default_factory=list)
    servers: list[ServerToolSummary] = field(default_factory=list)


@dataclass(slots=True)
class TokenGrant:
    token: str | None
    expires_at: str | None = None
    message: str | None = None


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _input_schema(schema: Any) -> dict[str, Any]:
    if isinstance(schema, dict) and schema:
        return schema
    return dict(DEFAULT_INPUT_SCHEMA)


class ConnectionManager:
    """Create, sync, refresh and remove provider-managed connections.

    The provider is the source of truth for status; local rows only mirror it.
    """

    def __init__(
        self,
        *,
        store: SQLiteStore,
        provider: SmitheryClient,
        transport: RPCTransport,
        namespaces: KeyValueCache,
        settings: Settings,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._provider = provider
        self._transport = transport
        self._namespaces = namespaces
        self._settings = settings
        self._clock = clock

    async def resolve_namespace(self) -> str:
        """Return the process namespace, creating the preferred one when none exist."""
        cached = self._namespaces.get(NAMESPACE_CACHE_KEY)
        if cached:
            return cached

        preferred = self._settings.smithery_namespace
        listed = await attempt(self._provider.list_namespaces())
        listed.log_if_failed(logger, "namespace listing failed")
        existing = listed.value or []
        if preferred in existing:
            namespace = preferred
        elif existing:
            namespace = existing[0]
        else:
            namespace = await self._provider.create_namespace(preferred)

        self._namespaces.put(NAMESPACE_CACHE_KEY, namespace)
        return namespace

    async def create(
        self,
        caller: CallerIdentity,
        mcp_url: str | None,
        display_name: str | None,
    ) -> CreateConnectionResult:
        if not mcp_url or not display_name:
            msg = "mcpUrl and displayName are required"
            raise InputError(msg)

        namespace = await self.resolve_namespace()
        connection_id = f"{caller.id}-{int(self._clock().timestamp() * 1000)}"
        payload = await self._provider.put_connection(
            namespace,
            connection_id,
            mcp_url=mcp_url,
            name=display_name,
            metadata={"userId": caller.id},
        )
        state = parse_connection_state(payload)
        if state.status == CONNECTED:
            state = await self._confirm_connected(namespace, connection_id, state)

        await self._store.upsert_connection(
            ManagedConnection(
                user_id=caller.id,
                namespace=namespace,
                connection_id=connection_id,
                mcp_url=mcp_url,
                display_name=display_name,
                status=state.status,
                authorization_url=state.authorization_url,
            )
        )
        logger.info("created managed connection %s (%s)", connection_id, state.status)
        return CreateConnectionResult(
            connection_id=connection_id,
            status=state.status,
            authorization_url=state.authorization_url,
            server_info=state.server_info,
        )

    async def list(self, caller: CallerIdentity) -> list[ManagedConnection]:
        """Return the caller's rows, newest first, after a best-effort status sync."""
        synced = await attempt(self._sync_statuses(caller))
        synced.log_if_failed(logger, "connection sync failed for user %s", caller.id)
        return await self._store.list_connections(caller.id)

    async def retry(
        self,
        caller: CallerIdentity,
        connection_id: str | None,
    ) -> ConnectionStatusResult:
        """Re-read status after the caller finished the external authorization flow."""
        return await self.refresh_status(caller, connection_id)

    async def verify(
        self,
        caller: CallerIdentity,
        connection_id: str | None,
    ) -> ConnectionStatusResult:
        """Health check one connection against the provider."""
        return await self.refresh_status(caller, connection_id)

    async def refresh_status(
        self,
        caller: CallerIdentity,
        connection_id: str | None,
    ) -> ConnectionStatusResult:
        if not connection_id:
            msg = "connectionId is required"
            raise InputError(msg)

        existing = await self._store.get_connection(caller.id, connection_id)
        namespace = existing.namespace if existing is not None else await self.resolve_namespace()
        payload = await self._provider.get_connection(namespace, connection_id)
        state = parse_connection_state(payload)
        await self._store.update_connection_status(
            caller.id,
            connection_id,
            state.status,
            authorization_url=state.authorization_url,
        )
        return ConnectionStatusResult(
            connection_id=connection_id,
            status=state.status,
            authorization_url=state.authorization_url,
        )

    async def remove(self, caller: CallerIdentity, connection_id: str | None) -> None:
        """Delete remotely if possible, then always delete the local row."""
        if not connection_id:
            msg = "connectionId is required"
            raise InputError(msg)

        existing = await self._store.get_connection(caller.id, connection_id)
        if existing is not None:
            namespace: str | None = existing.namespace
        else:
            resolved = await attempt(self.resolve_namespace())
            resolved.log_if_failed(logger, "namespace resolution failed during remove")
            namespace = resolved.value

        if namespace is not None:
            deleted = await attempt(self._provider.delete_connection(namespace, connection_id))
            deleted.log_if_failed(logger, "provider delete failed for %s", connection_id)

        await self._store.delete_connection(caller.id, connection_id)

    async def list_tools(self, caller: CallerIdentity) -> ToolListing:
        """Aggregate ``tools/list`` across the caller's connected servers."""
        if not self._provider.configured:
            msg = "Smithery API key not configured"
            raise ConfigurationError(msg)

        namespace = await self.resolve_namespace()
        connections = await self._store.list_connections(
            caller.id,
            namespace=namespace,
            status=CONNECTED,
        )
        listing = ToolListing()
        for connection in connections:
            fetched = await attempt(
                self._transport.request(
                    self._relay_server(namespace, connection.connection_id),
                    "tools/list",
                    {},
                )
            )
            if fetched.value is None:
                fetched.log_if_failed(
                    logger,
                    "tools/list failed for %s",
                    connection.display_name,
                )
                continue

            result = fetched.value.result
            raw_tools = result.get("tools") if isinstance(result, dict) else None
            if not isinstance(raw_tools, list):
                raw_tools = []
            tools = [tool for tool in raw_tools if isinstance(tool, dict) and tool.get("name")]
            for tool in tools:
                listing.tools.append(
                    RemoteTool(
                        name=str(tool["name"]),
                        description=str(tool.get("description") or tool["name"]),
                        input_schema=_input_schema(tool.get("inputSchema")),
                        server_name=connection.display_name,
                        connection_id=connection.connection_id,
                    )
                )
            listing.servers.append(
                ServerToolSummary(
                    connection_id=connection.connection_id,
                    display_name=connection.display_name,
                    tool_count=len(tools),
                )
            )
        return listing

    async def mint_token(self, caller: CallerIdentity) -> TokenGrant:
        """Issue a short-lived provider token scoped to the caller's namespaces."""
        if not self._provider.configured:
            msg = "Smithery API key not configured"
            raise ConfigurationError(msg)

        connections = await self._store.list_connections(caller.id, status=CONNECTED)
        namespaces = list(dict.fromkeys(row.namespace for row in connections if row.namespace))
        if not namespaces:
            return TokenGrant(token=None, message="No active Smithery connections")

        scope = {"namespaces": namespaces, "metadata": {"userId": caller.id}}
        payload = await self._provider.create_token(
            {
                "allow": {
                    "connections": {"actions": ["read"], **scope},
                    "mcp": {"actions": ["write"], **scope},
                },
                "ttlSeconds": TOKEN_TTL_SECONDS,
            }
        )
        token = payload.get("token")
        expires_at = payload.get("expiresAt")
        return TokenGrant(
            token=str(token) if token else None,
            expires_at=str(expires_at) if expires_at else None,
        )

    async def _confirm_connected(
        self,
        namespace: str,
        connection_id: str,
        state: ConnectionState,
    ) -> ConnectionState:
        # An optimistic "connected" on create may still need authorization.
        verified = await attempt(
            self._transport.request(self._relay_server(namespace, connection_id), "tools/list", {})
        )
        if verified.ok:
            return state
        verified.log_if_failed(logger, "post-create verification failed for %s", connection_id)

        refetched = await attempt(self._provider.get_connection(namespace, connection_id))
        refetched.log_if_failed(logger, "post-create status re-fetch failed for %s", connection_id)
        if refetched.value is None:
            return state
        fresh = parse_connection_state(refetched.value)
        if fresh.status != AUTH_REQUIRED:
            return state
        return ConnectionState(
            status=AUTH_REQUIRED,
            authorization_url=fresh.authorization_url,
            server_info=state.server_info,
        )

    async def _sync_statuses(self, caller: CallerIdentity) -> None:
        namespace = await self.resolve_namespace()
        remote = await self._provider.list_connections(namespace, metadata={"userId": caller.id})
        local = {row.connection_id: row for row in await self._store.list_connections(caller.id)}
        for item in remote:
            connection_id = item.get("connectionId") or item.get("id")
            if not connection_id or not item.get("status"):
                continue
            row = local.get(str(connection_id))
            if row is None:
                continue
            state = parse_connection_state(item)
            if state.status == row.status:
                continue
            await self._store.update_connection_status(
                caller.id,
                row.connection_id,
                state.status,
                authorization_url=state.authorization_url or row.authorization_url,
            )

    @staticmethod
    def _relay_server(namespace: str, connection_id: str) -> ManagedServer:
        return ManagedServer(
            url=f"{MANAGED_SCHEME}{namespace}/{connection_id}",
            namespace=namespace,
            connection_id=connection_id,
        )
