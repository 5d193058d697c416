"""Managed connection lifecycle API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConnectionActionRequest(CamelModel):
    """Body shared by all lifecycle actions; each action reads its own fields."""

    mcp_url: str | None = None
    display_name: str | None = None
    connection_id: str | None = None


class ManagedConnectionResponse(CamelModel):
    """Persisted managed connection row."""

    id: str
    namespace: str
    connection_id: str
    mcp_url: str
    display_name: str
    status: str
    authorization_url: str | None = None
    created_at: datetime
    updated_at: datetime


class ConnectionsResponse(CamelModel):
    connections: list[ManagedConnectionResponse]


class CreateConnectionResponse(CamelModel):
    connection_id: str
    status: str
    authorization_url: str | None = None
    server_info: dict[str, Any] | None = None


class ConnectionStatusResponse(CamelModel):
    connection_id: str
    status: str
    authorization_url: str | None = None


class RemoveConnectionResponse(CamelModel):
    success: bool


class RemoteToolResponse(CamelModel):
    name: str
    description: str
    input_schema: dict[str, Any]
    server_name: str
    connection_id: str


class ServerToolSummaryResponse(CamelModel):
    connection_id: str
    display_name: str
    tool_count: int


class ToolListingResponse(CamelModel):
    tools: list[RemoteToolResponse]
    servers: list[ServerToolSummaryResponse]


class TokenResponse(CamelModel):
    """Scoped provider token; ``token`` is null when nothing is connected."""

    token: str | None
    expires_at: str | None = None
    message: str | None = None
