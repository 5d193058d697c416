"""Managed connection lifecycle route, dispatched on ``?action=``."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Body, Depends, Header, Query
from pydantic import BaseModel

from mcprelay.api.deps import get_connection_manager, get_identity_verifier
from mcprelay.api.routes.common import authenticate
from mcprelay.api.schemas.connections import (
    ConnectionActionRequest,
    ConnectionsResponse,
    ConnectionStatusResponse,
    CreateConnectionResponse,
    ManagedConnectionResponse,
    RemoteToolResponse,
    RemoveConnectionResponse,
    ServerToolSummaryResponse,
    TokenResponse,
    ToolListingResponse,
)
from mcprelay.core.connection_manager import ConnectionManager, ConnectionStatusResult
from mcprelay.core.identity import CallerIdentity, IdentityVerifier
from mcprelay.errors import InputError

router = APIRouter(prefix="/api/v1", tags=["connections"])

type ActionHandler = Callable[
    [ConnectionManager, CallerIdentity, ConnectionActionRequest],
    Awaitable[BaseModel],
]


def _status_response(result: ConnectionStatusResult) -> ConnectionStatusResponse:
    return ConnectionStatusResponse(
        connection_id=result.connection_id,
        status=result.status,
        authorization_url=result.authorization_url,
    )


async def _create(
    manager: ConnectionManager,
    caller: CallerIdentity,
    body: ConnectionActionRequest,
) -> CreateConnectionResponse:
    created = await manager.create(caller, body.mcp_url, body.display_name)
    return CreateConnectionResponse(
        connection_id=created.connection_id,
        status=created.status,
        authorization_url=created.authorization_url,
        server_info=created.server_info,
    )


async def _list(
    manager: ConnectionManager,
    caller: CallerIdentity,
    _: ConnectionActionRequest,
) -> ConnectionsResponse:
    rows = await manager.list(caller)
    return ConnectionsResponse(
        connections=[
            ManagedConnectionResponse.model_validate(row.model_dump()) for row in rows
        ]
    )


async def _remove(
    manager: ConnectionManager,
    caller: CallerIdentity,
    body: ConnectionActionRequest,
) -> RemoveConnectionResponse:
    await manager.remove(caller, body.connection_id)
    return RemoveConnectionResponse(success=True)


async def _retry(
    manager: ConnectionManager,
    caller: CallerIdentity,
    body: ConnectionActionRequest,
) -> ConnectionStatusResponse:
    return _status_response(await manager.retry(caller, body.connection_id))


async def _verify(
    manager: ConnectionManager,
    caller: CallerIdentity,
    body: ConnectionActionRequest,
) -> ConnectionStatusResponse:
    return _status_response(await manager.verify(caller, body.connection_id))


async def _list_tools(
    manager: ConnectionManager,
    caller: CallerIdentity,
    _: ConnectionActionRequest,
) -> ToolListingResponse:
    listing = await manager.list_tools(caller)
    return ToolListingResponse(
        tools=[
            RemoteToolResponse(
                name=tool.name,
                description=tool.description,
                input_schema=tool.input_schema,
                server_name=tool.server_name,
                connection_id=tool.connection_id,
            )
            for tool in listing.tools
        ],
        servers=[
            ServerToolSummaryResponse(
                connection_id=server.connection_id,
                display_name=server.display_name,
                tool_count=server.tool_count,
            )
            for server in listing.servers
        ],
    )


async def _token(
    manager: ConnectionManager,
    caller: CallerIdentity,
    _: ConnectionActionRequest,
) -> TokenResponse:
    grant = await manager.mint_token(caller)
    return TokenResponse(token=grant.token, expires_at=grant.expires_at, message=grant.message)


ACTIONS: dict[str, ActionHandler] = {
    "create": _create,
    "list": _list,
    "remove": _remove,
    "retry": _retry,
    "verify": _verify,
    "list-tools": _list_tools,
    "token": _token,
}


@router.post("/connections", response_model=None)
async def connection_action(
    action: str | None = Query(default=None),
    body: ConnectionActionRequest | None = Body(default=None),
    authorization: str | None = Header(default=None),
    manager: ConnectionManager = Depends(get_connection_manager),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> BaseModel:
    handler = ACTIONS.get(action or "")
    if handler is None:
        msg = f"Unknown action: {action}"
        raise InputError(msg)
    caller = await authenticate(authorization, verifier)
    return await handler(manager, caller, body or ConnectionActionRequest())
