from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, Dict, Optional

from pathway_core.json_extract import extract_json

from .events import Event, ModelTextDelta, OtherEvent, ToolResult

logger = logging.getLogger(__name__)

UNKNOWN_TOOL_NAME = "unknown"


@dataclass
class TurnOutcome:
    """Everything a completed turn produced.

    ``tool_results`` holds the last value seen per tool name; a later result
    from the same tool replaces the earlier one.
    """

    text: str = ""
    tool_results: Dict[str, Any] = field(default_factory=dict)
    finish_reason: Optional[str] = None


class EventStreamConsumer:
    """Drain one turn's event stream into a ``TurnOutcome``."""

    async def consume(self, events: AsyncIterable[Event]) -> TurnOutcome:
        outcome = TurnOutcome()
        fragments: list[str] = []
        count = 0

        async for event in events:
            count += 1
            logger.debug("Agent event #%s: %r", count, event)
            self.apply(event, outcome, fragments)

        outcome.text = "".join(fragments)
        return outcome

    def apply(self, event: Event, outcome: TurnOutcome, fragments: list[str]) -> None:
        if isinstance(event, ModelTextDelta):
            fragments.append(event.text)
        elif isinstance(event, ToolResult):
            outcome.tool_results[event.name] = event.value
        elif isinstance(event, OtherEvent) and event.text:
            # Some integrations only report results as serialized text.
            recovered = extract_json(event.text)
            if isinstance(recovered, (dict, list)):
                outcome.tool_results[UNKNOWN_TOOL_NAME] = recovered

        finish_reason = getattr(event, "finish_reason", None)
        if finish_reason:
            outcome.finish_reason = finish_reason
