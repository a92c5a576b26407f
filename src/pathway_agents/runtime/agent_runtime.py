from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, List, Mapping, Optional, Tuple

from pathway_core.errors import ToolError, UnparseableOutputError, UpstreamError
from pathway_core.llm import LLMMessage, LLMResult, ToolCall
from pathway_core.provider_router import ProviderRouter

from .events import Event, ModelTextDelta, OtherEvent, ToolResult
from .tools import AgentTool

if TYPE_CHECKING:
    from ..catalog import AgentCatalog

LOGGER = logging.getLogger(__name__)

TOOL_ITERATION_LIMIT_REASON = "tool_iteration_limit"


@dataclass
class ConversationState:
    """Opaque per-session conversation state owned by the runtime."""

    app_id: str
    user_id: str
    session_id: str
    agent: str
    history: List[LLMMessage] = field(default_factory=list)
    turns: int = 0


class AgentRuntime:
    """Tool-loop runtime that turns one user message into a stream of events.

    Model calls go through the provider router in a worker thread. Tool calls
    are executed between model calls and their results fed back until the
    model stops asking for tools or ``max_tool_iterations`` is reached.
    """

    def __init__(
        self,
        *,
        catalog: AgentCatalog,
        router: Optional[ProviderRouter] = None,
        logger: Optional[logging.Logger] = None,
        max_tool_iterations: int = 6,
    ) -> None:
        self.catalog = catalog
        self.router = router or ProviderRouter.lazy_default()
        self.logger = logger or LOGGER
        self.max_tool_iterations = max_tool_iterations

    # ------------------------------------------------------------------ #
    # Sessions
    # ------------------------------------------------------------------ #

    def create_session(self, app_id: str, user_id: str, session_id: str, *, agent: str) -> ConversationState:
        """Construct fresh conversation state. Local only, never touches the network."""

        self.catalog.get(agent)
        return ConversationState(app_id=app_id, user_id=user_id, session_id=session_id, agent=agent)

    # ------------------------------------------------------------------ #
    # Turn loop
    # ------------------------------------------------------------------ #

    async def submit(self, state: ConversationState, user_text: str) -> AsyncIterator[Event]:
        """Run one turn, yielding events in arrival order.

        History is committed to ``state`` only once the loop finishes, so a
        turn that raises leaves the conversation as it was.
        """

        agent = self.catalog.get(state.agent)
        registry = {tool.name: tool for tool in self.catalog.tools_for(state.agent)}
        definitions = [tool.definition for tool in registry.values()] or None

        history = [_clone_message(message) for message in state.history]
        history.append(LLMMessage(role="user", content=user_text))

        iterations = 0
        stop_reason: Optional[str] = None

        while True:
            response: LLMResult = await asyncio.to_thread(
                self.router.send,
                provider=agent.provider,
                model=agent.model,
                messages=history,
                tools=definitions,
                system=agent.instructions or None,
                max_tokens=agent.max_tokens,
                temperature=agent.temperature,
            )
            iterations += 1
            assistant_message = _assistant_message_from_result(response)
            if assistant_message.content_blocks():
                history.append(assistant_message)

            for block in response.content_blocks or [{"type": "text", "text": response.text}]:
                event = _event_for_block(block)
                if event is not None:
                    yield event

            if not response.tool_calls:
                stop_reason = response.stop_reason
                break

            result_blocks: List[Dict[str, Any]] = []
            for call in response.tool_calls:
                value, is_error = await self._execute_tool(call, registry)
                yield ToolResult(name=call.name, value=value, is_error=is_error)
                result_blocks.append(_tool_result_block(call_id=call.id, value=value, is_error=is_error))
            history.append(LLMMessage(role="user", content=result_blocks))

            if iterations >= self.max_tool_iterations:
                self.logger.warning(
                    "Session %s hit the tool iteration limit (%s)", state.session_id, self.max_tool_iterations
                )
                stop_reason = TOOL_ITERATION_LIMIT_REASON
                break

        state.history = history
        state.turns += 1
        yield OtherEvent(kind="turn_complete", finish_reason=stop_reason)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _execute_tool(self, call: ToolCall, registry: Mapping[str, AgentTool]) -> Tuple[Dict[str, Any], bool]:
        tool = registry.get(call.name)
        if tool is None:
            self.logger.warning("Missing tool handler for %s", call.name)
            error = ToolError(code="tool_not_found", message=f"Tool '{call.name}' is not registered for this agent.")
            return error.to_payload(), True

        try:
            return await tool.invoke(call.arguments), False
        except ToolError as exc:
            self.logger.info("Tool %s returned error code=%s: %s", call.name, exc.code, exc.message)
            return exc.to_payload(), True
        except (UnparseableOutputError, UpstreamError):
            raise
        except Exception as exc:
            self.logger.exception("Tool handler raised for %s", call.name)
            return ToolError(code="tool_failed", message=str(exc) or type(exc).__name__).to_payload(), True


# ---------------------------------------------------------------------- #
# Helper utilities
# ---------------------------------------------------------------------- #


def _clone_message(message: LLMMessage) -> LLMMessage:
    if isinstance(message.content, str):
        return LLMMessage(role=message.role, content=message.content)
    return LLMMessage(role=message.role, content=message.content_blocks())


def _assistant_message_from_result(result: LLMResult) -> LLMMessage:
    if result.content_blocks:
        return LLMMessage(role="assistant", content=result.content_blocks)
    if not result.tool_calls:
        return LLMMessage(role="assistant", content=result.text or "")

    blocks: List[Dict[str, Any]] = []
    if result.text:
        blocks.append({"type": "text", "text": result.text})
    for call in result.tool_calls:
        blocks.append({"type": "tool_use", "id": call.id, "name": call.name, "input": dict(call.arguments)})
    return LLMMessage(role="assistant", content=blocks)


def _event_for_block(block: Mapping[str, Any]) -> Optional[Event]:
    block_type = block.get("type")
    if block_type == "text":
        text = block.get("text")
        return ModelTextDelta(text=str(text)) if text else None
    if block_type == "tool_use":
        return None
    text = block.get("text")
    return OtherEvent(kind=str(block_type or "unknown"), text=text if isinstance(text, str) else None)


def _tool_result_block(*, call_id: str, value: Mapping[str, Any], is_error: bool) -> Dict[str, Any]:
    try:
        content = json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        content = json.dumps({"value": str(value)}, ensure_ascii=False)

    block: Dict[str, Any] = {
        "type": "tool_result",
        "tool_use_id": call_id,
        "content": content,
    }
    if is_error:
        block["is_error"] = True
    return block
