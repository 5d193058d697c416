from hypothesis import given
from hypothesis import strategies as st

from mcprelay.models.connection import RESULT_LOG_LIMIT, ToolCallLogEntry


@given(st.text(max_size=RESULT_LOG_LIMIT * 2))
def test_logged_result_is_capped_prefix(result: str) -> None:
    entry = ToolCallLogEntry.truncated(
        tool_name="search",
        server_url="https://tools.example.org/mcp",
        status="success",
        result=result,
        duration_ms=1,
    )
    assert len(entry.result) <= RESULT_LOG_LIMIT
    assert result.startswith(entry.result)
