"""Tools whose result is produced by the structured-output generator."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pathway_core.structured_output import StructuredOutputGenerator, StructuredOutputRequest

from .tools import AgentTool, make_tool

logger = logging.getLogger(__name__)

PromptBuilder = Callable[[Dict[str, Any]], str]


def structured_output_tool(
    *,
    name: str,
    description: str,
    parameters: Mapping[str, Any],
    generator: StructuredOutputGenerator,
    build_prompt: PromptBuilder,
    schema_description: Union[str, PromptBuilder],
    temperature: float = 0.4,
    max_output_tokens: int = 3600,
    validate: Optional[Callable[[Dict[str, Any]], None]] = None,
) -> AgentTool:
    """Wrap a generate-then-repair call as an agent tool.

    ``validate`` may raise ``ToolError`` to reject arguments before any model
    call is made. ``UnparseableOutputError`` is not caught here; it ends the
    turn.
    """

    def execute(arguments: Dict[str, Any]) -> Dict[str, Any]:
        if validate is not None:
            validate(arguments)
        schema = schema_description(arguments) if callable(schema_description) else schema_description
        request = StructuredOutputRequest(
            prompt=build_prompt(arguments),
            schema_description=schema,
            temperature=temperature,
            max_output_tokens=max_output_tokens,
        )
        result = generator.generate(request)
        if result.truncated:
            logger.warning("Tool %s produced parseable but truncated output (finish_reason=%s)", name, result.finish_reason)
        return {
            "result": result.value,
            "finishReason": result.finish_reason,
            "repaired": result.repaired,
        }

    return make_tool(name=name, description=description, parameters=parameters, execute=execute)
