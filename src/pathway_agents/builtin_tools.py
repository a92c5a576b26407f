"""Tools available to every agent file by name."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from pathway_core.errors import ToolError
from pathway_core.structured_output import StructuredOutputGenerator

from .runtime.structured_tools import structured_output_tool
from .runtime.tools import AgentTool

GENERATE_JSON_TOOL = "generateJson"

_GENERATE_JSON_PARAMETERS = {
    "type": "object",
    "properties": {
        "instructions": {"type": "string", "description": "What the JSON document should contain."},
        "schema": {"type": "string", "description": "Schema or example of the required JSON shape."},
    },
    "required": ["instructions", "schema"],
}


def _require_fields(arguments: Dict[str, Any]) -> None:
    missing = [key for key in ("instructions", "schema") if not str(arguments.get(key) or "").strip()]
    if missing:
        raise ToolError(code=400, message=f"{GENERATE_JSON_TOOL} requires {' and '.join(repr(key) for key in missing)}.")


def generate_json_tool(generator: StructuredOutputGenerator) -> AgentTool:
    return structured_output_tool(
        name=GENERATE_JSON_TOOL,
        description="Produces a strict JSON document matching the given schema.",
        parameters=_GENERATE_JSON_PARAMETERS,
        generator=generator,
        build_prompt=lambda args: (
            f"{str(args['instructions']).strip()}\n\n"
            f"Return JSON matching this schema:\n{str(args['schema']).strip()}"
        ),
        schema_description=lambda args: str(args["schema"]).strip(),
        validate=_require_fields,
    )


def builtin_tool_factory(generator: StructuredOutputGenerator) -> Callable[[str], Optional[AgentTool]]:
    """Resolve tool names from an agent file into built-in implementations."""

    builders = {GENERATE_JSON_TOOL: generate_json_tool}

    def factory(name: str) -> Optional[AgentTool]:
        builder = builders.get(name)
        return builder(generator) if builder else None

    return factory
