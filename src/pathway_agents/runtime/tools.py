from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, Union

from pathway_core.llm import ToolDefinition

ToolExecute = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]


@dataclass
class AgentTool:
    """A tool definition bound to the callable that executes it.

    ``execute`` receives the model's arguments. It may be synchronous (run in a
    worker thread) or a coroutine function, and may raise
    ``pathway_core.errors.ToolError`` to report a structured failure.
    """

    definition: ToolDefinition
    execute: ToolExecute

    @property
    def name(self) -> str:
        return self.definition.name

    async def invoke(self, arguments: Mapping[str, Any]) -> Dict[str, Any]:
        args = dict(arguments)
        if inspect.iscoroutinefunction(self.execute):
            result = await self.execute(args)
        else:
            result = await asyncio.to_thread(self.execute, args)
            if inspect.isawaitable(result):
                result = await result
        return normalise_tool_result(result)


def make_tool(
    *,
    name: str,
    description: str,
    parameters: Optional[Mapping[str, Any]] = None,
    execute: ToolExecute,
) -> AgentTool:
    schema = dict(parameters or {"type": "object", "properties": {}})
    return AgentTool(
        definition=ToolDefinition(name=name, description=description, input_schema=schema),
        execute=execute,
    )


def normalise_tool_result(value: Any) -> Dict[str, Any]:
    """Coerce a tool's return value into the JSON object handed to the model."""

    if value is None:
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (str, bytes)):
        return {"value": value.decode("utf-8", errors="replace") if isinstance(value, bytes) else value}
    if isinstance(value, Sequence):
        return {"items": list(value)}
    return {"value": value}
