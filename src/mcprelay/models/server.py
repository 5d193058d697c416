"""Target MCP server descriptors."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from mcprelay.errors import InputError

MANAGED_SCHEME = "smithery://"


class ServerDescriptor(BaseModel):
    """Caller-supplied description of the server a tool call targets."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str
    api_key: str | None = Field(default=None, validation_alias=AliasChoices("apiKey", "api_key"))
    config: dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("config", "providerConfig", "provider_config"),
    )

    @property
    def session_key(self) -> str:
        """Cache key for the protocol session bound to this server."""
        connection_id = (self.config or {}).get("connectionId")
        if connection_id:
            return f"{self.url}::{connection_id}"
        return self.url


@dataclass(frozen=True, slots=True)
class ManagedServer:
    """Server reached through the provider's managed-connection relay."""

    url: str
    namespace: str
    connection_id: str
    config: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class GenericServer:
    """Plain streamable-HTTP MCP endpoint."""

    url: str
    api_key: str | None = None
    config: dict[str, Any] = field(default_factory=dict)
    session_key: str = ""

    def __post_init__(self) -> None:
        if not self.session_key:
            object.__setattr__(self, "session_key", self.url)


type TargetServer = ManagedServer | GenericServer


def classify(descriptor: ServerDescriptor) -> TargetServer:
    """Map a descriptor onto the managed or generic variant."""
    config = dict(descriptor.config or {})
    namespace = config.get("namespace")
    connection_id = config.get("connectionId")

    if descriptor.url.startswith(MANAGED_SCHEME):
        parsed = urlsplit(descriptor.url)
        path_parts = [part for part in parsed.path.split("/") if part]
        namespace = namespace or parsed.netloc or None
        connection_id = connection_id or (path_parts[0] if path_parts else None)
        if not namespace or not connection_id:
            msg = f"Managed server URL needs a namespace and connection id: {descriptor.url}"
            raise InputError(msg)
        return ManagedServer(
            url=descriptor.url,
            namespace=str(namespace),
            connection_id=str(connection_id),
            config=config,
        )

    if namespace and connection_id:
        return ManagedServer(
            url=descriptor.url,
            namespace=str(namespace),
            connection_id=str(connection_id),
            config=config,
        )

    return GenericServer(
        url=descriptor.url,
        api_key=descriptor.api_key,
        config=config,
        session_key=descriptor.session_key,
    )
