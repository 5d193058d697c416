"""Managed connection and audit log models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field

RESULT_LOG_LIMIT = 10_000


class ConnectionStatus(str, Enum):
    """Provider statuses the relay reacts to.

    Any other provider string is stored verbatim.
    """

    CONNECTED = "connected"
    AUTH_REQUIRED = "auth_required"


class ManagedConnection(BaseModel):
    """Local mirror of one provider-managed connection."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    namespace: str
    connection_id: str
    mcp_url: str
    display_name: str
    status: str = ConnectionStatus.CONNECTED.value
    authorization_url: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ToolCallLogEntry(BaseModel):
    """Append-only audit record for one tool execution attempt."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    tool_name: str
    server_url: str
    server_config: dict[str, Any] | None = None
    arguments: dict[str, Any] = Field(default_factory=dict)
    status: Literal["success", "error"]
    result: str
    duration_ms: int
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def truncated(cls, **values: Any) -> ToolCallLogEntry:
        """Build an entry with ``result`` capped at the audit limit."""
        values["result"] = str(values.get("result", ""))[:RESULT_LOG_LIMIT]
        return cls(**values)
