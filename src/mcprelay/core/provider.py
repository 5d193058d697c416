"""REST client for the managed-connection provider (Smithery)."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, cast

import httpx

from mcprelay.config import Settings
from mcprelay.errors import ConfigurationError, ProviderError
from mcprelay.models.connection import ConnectionStatus

type ProviderPayload = dict[str, Any]


@dataclass(slots=True)
class ConnectionState:
    """Status fields parsed out of one provider connection payload."""

    status: str
    authorization_url: str | None = None
    server_info: ProviderPayload | None = None


def parse_connection_state(payload: ProviderPayload) -> ConnectionState:
    """Read status, authorization URL and server info from a connection payload.

    ``status`` may be a plain string or an object with a ``state`` field. A
    payload without status is treated as connected.
    """
    raw_status = payload.get("status")
    authorization_url = payload.get("authorizationUrl")
    if isinstance(raw_status, dict):
        authorization_url = authorization_url or raw_status.get("authorizationUrl")
        raw_status = raw_status.get("state")
    status = str(raw_status) if raw_status else ConnectionStatus.CONNECTED.value
    server_info = payload.get("serverInfo")
    return ConnectionState(
        status=status,
        authorization_url=str(authorization_url) if authorization_url else None,
        server_info=server_info if isinstance(server_info, dict) else None,
    )


def _items(payload: Any, *keys: str) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in keys:
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return []


class SmitheryClient:
    """Thin async wrapper over the provider's connection and namespace API."""

    def __init__(
        self,
        settings: Settings,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self._settings.smithery_api_key)

    async def list_namespaces(self) -> list[str]:
        response = await self._call("GET", "/namespaces")
        self._raise_for_status(response, "Smithery namespace listing failed")
        names: list[str] = []
        for item in _items(response.json(), "namespaces", "data"):
            name = item.get("name") if isinstance(item, dict) else item
            if isinstance(name, str) and name:
                names.append(name)
        return names

    async def create_namespace(self, name: str) -> str:
        """Create ``name``; an existing namespace of that name counts as created."""
        response = await self._call("PUT", f"/namespaces/{name}")
        if response.status_code == httpx.codes.CONFLICT:
            return name
        self._raise_for_status(response, "Smithery namespace creation failed")
        return name

    async def put_connection(
        self,
        namespace: str,
        connection_id: str,
        *,
        mcp_url: str,
        name: str,
        metadata: dict[str, str],
    ) -> ProviderPayload:
        response = await self._call(
            "PUT",
            f"/connect/{namespace}/{connection_id}",
            body={"mcpUrl": mcp_url, "name": name, "metadata": metadata},
        )
        self._raise_for_status(response, "Smithery connection failed")
        return self._object(response)

    async def get_connection(self, namespace: str, connection_id: str) -> ProviderPayload:
        response = await self._call("GET", f"/connect/{namespace}/{connection_id}")
        self._raise_for_status(response, "Smithery status check failed")
        return self._object(response)

    async def list_connections(
        self,
        namespace: str,
        *,
        metadata: dict[str, str],
    ) -> list[ProviderPayload]:
        response = await self._call(
            "GET",
            f"/connect/{namespace}",
            query={"metadata": json.dumps(metadata, separators=(",", ":"))},
        )
        self._raise_for_status(response, "Smithery connection listing failed")
        return [
            cast(ProviderPayload, item)
            for item in _items(response.json(), "data", "connections")
            if isinstance(item, dict)
        ]

    async def delete_connection(self, namespace: str, connection_id: str) -> None:
        response = await self._call("DELETE", f"/connect/{namespace}/{connection_id}")
        if response.status_code == httpx.codes.NOT_FOUND:
            return
        self._raise_for_status(response, "Smithery connection delete failed")

    async def create_token(self, grant: ProviderPayload) -> ProviderPayload:
        response = await self._call("POST", "/tokens", body=grant)
        self._raise_for_status(response, "Smithery token creation failed")
        return self._object(response)

    async def _call(
        self,
        method: str,
        path: str,
        *,
        body: ProviderPayload | None = None,
        query: dict[str, str] | None = None,
    ) -> httpx.Response:
        api_key = self._settings.smithery_api_key
        if not api_key:
            msg = "Smithery API key not configured"
            raise ConfigurationError(msg)
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        url = f"{self._settings.managed_relay_base}{path}"
        async with self._http_client() as client:
            return await client.request(method, url, headers=headers, json=body, params=query)

    @asynccontextmanager
    async def _http_client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self._settings.request_timeout_seconds) as client:
            yield client

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        detail = response.text.strip() or f"http status {response.status_code}"
        raise ProviderError(f"{action}: {detail}", upstream_status=response.status_code)

    @staticmethod
    def _object(response: httpx.Response) -> ProviderPayload:
        if not response.content.strip():
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            msg = "Invalid provider response payload"
            raise ProviderError(msg, upstream_status=response.status_code) from exc
        if not isinstance(payload, dict):
            msg = "Invalid provider response payload"
            raise ProviderError(msg, upstream_status=response.status_code)
        return cast(ProviderPayload, payload)
