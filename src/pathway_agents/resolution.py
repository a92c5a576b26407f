from __future__ import annotations

from typing import Any, Optional

from pathway_core.json_extract import extract_json

from .runtime.consumer import TurnOutcome


def resolve_turn_result(outcome: TurnOutcome, preferred_tool: Optional[str] = None) -> Any:
    """Decide what a completed turn returns to the caller.

    A recorded result from the agent's preferred tool wins outright, since it
    comes from controlled code. Otherwise JSON recovered from the model's
    text is returned, and failing that the raw text.
    """

    if preferred_tool and preferred_tool in outcome.tool_results:
        return outcome.tool_results[preferred_tool]

    parsed = extract_json(outcome.text)
    if parsed is not None:
        return parsed
    return outcome.text
