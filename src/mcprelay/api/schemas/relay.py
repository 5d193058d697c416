"""Tool relay API schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from mcprelay.models.server import ServerDescriptor


class ToolCallRequest(BaseModel):
    """Relay payload: which tool to run on which server."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tool_name: str | None = None
    arguments: dict[str, Any] | None = None
    server: ServerDescriptor | None = None


class ToolCallResponse(BaseModel):
    """Tool output, or an ``Error: ...`` string."""

    result: str
