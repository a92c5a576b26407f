"""Agent runtime: the tool loop, its event stream and the stream consumer."""

from .agent_runtime import AgentRuntime, ConversationState
from .consumer import UNKNOWN_TOOL_NAME, EventStreamConsumer, TurnOutcome
from .events import Event, ModelTextDelta, OtherEvent, ToolResult
from .structured_tools import structured_output_tool
from .tools import AgentTool, make_tool, normalise_tool_result

__all__ = [
    "UNKNOWN_TOOL_NAME",
    "AgentRuntime",
    "AgentTool",
    "ConversationState",
    "Event",
    "EventStreamConsumer",
    "ModelTextDelta",
    "OtherEvent",
    "ToolResult",
    "TurnOutcome",
    "make_tool",
    "normalise_tool_result",
    "structured_output_tool",
]
