"""Tool relay route."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from mcprelay.api.deps import get_tool_executor
from mcprelay.api.schemas.relay import ToolCallRequest, ToolCallResponse
from mcprelay.errors import InputError
from mcprelay.mcp.executor import ToolExecutor

router = APIRouter(prefix="/api/v1", tags=["relay"])


@router.post("/tool-call", response_model=ToolCallResponse)
async def relay_tool_call(
    request: ToolCallRequest,
    executor: ToolExecutor = Depends(get_tool_executor),
) -> ToolCallResponse:
    if not request.tool_name or request.server is None:
        msg = "toolName and server are required"
        raise InputError(msg)
    result = await executor.execute(request.server, request.tool_name, request.arguments or {})
    return ToolCallResponse(result=result)
