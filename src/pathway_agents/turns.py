"""Turn runner: the single entry point HTTP callers use to talk to agents."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union
from uuid import uuid4

from pathway_core.errors import PathwayError, UpstreamError, ValidationError
from pathway_core.settings import RuntimeSettings

from .catalog import AgentCatalog, AgentDefinition
from .resolution import resolve_turn_result
from .runtime import AgentRuntime, EventStreamConsumer
from .sessions import SessionRegistry

logger = logging.getLogger(__name__)

PromptInput = Union[str, Mapping[str, Any]]

MISSING_PROMPT_MESSAGE = 'Missing prompt. Send { prompt: "..." }.'


@dataclass
class TurnResponse:
    result: Any
    session_id: str
    finish_reason: Optional[str] = None

    def to_dict(self) -> dict:
        payload = {"success": True, "result": self.result, "sessionId": self.session_id}
        if self.finish_reason:
            payload["finishReason"] = self.finish_reason
        return payload


class TurnRunner:
    """Run one conversational turn end to end.

    Resolves the agent, binds or creates the session, drains the runtime's
    event stream and applies the response resolution policy.
    """

    def __init__(
        self,
        *,
        catalog: AgentCatalog,
        runtime: Optional[AgentRuntime] = None,
        registry: Optional[SessionRegistry] = None,
        consumer: Optional[EventStreamConsumer] = None,
        settings: Optional[RuntimeSettings] = None,
    ) -> None:
        self.settings = settings or RuntimeSettings()
        self.catalog = catalog
        self.runtime = runtime or AgentRuntime(
            catalog=catalog, max_tool_iterations=self.settings.max_tool_iterations
        )
        self.registry = registry or SessionRegistry(
            ttl_seconds=self.settings.session_ttl_seconds,
            max_sessions=self.settings.max_sessions,
        )
        self.consumer = consumer or EventStreamConsumer()

    async def run_turn(
        self,
        agent: str,
        user_text: PromptInput,
        session_id: Optional[str] = None,
    ) -> TurnResponse:
        if not _has_prompt(user_text):
            raise ValidationError(MISSING_PROMPT_MESSAGE)
        definition = self.catalog.get(agent)
        prompt = self._prompt_text(definition, user_text)

        if session_id is not None and (not isinstance(session_id, str) or not session_id.strip()):
            raise ValidationError("'sessionId' must be a non-empty string when provided.")
        resolved_id = session_id.strip() if session_id else new_session_id()

        session = self.registry.get_or_create(
            resolved_id,
            definition.name,
            lambda key: self.runtime.create_session(
                self.settings.app_id, self.settings.user_id, key, agent=definition.name
            ),
            user_id=self.settings.user_id,
            claim=True,
        )

        try:
            async with session.turn_lock:
                logger.debug("Running turn for agent=%s session=%s", definition.name, resolved_id)
                try:
                    outcome = await self.consumer.consume(self.runtime.submit(session.state, prompt))
                except PathwayError:
                    raise
                except Exception as exc:
                    logger.exception("Agent %s failed during turn (session=%s)", definition.name, resolved_id)
                    raise UpstreamError(f"Agent runtime failed: {exc}") from exc
        finally:
            self.registry.release(session)

        result = resolve_turn_result(outcome, definition.preferred_tool)
        return TurnResponse(result=result, session_id=resolved_id, finish_reason=outcome.finish_reason)

    def _prompt_text(self, definition: AgentDefinition, user_text: PromptInput) -> str:
        if isinstance(user_text, str):
            text = user_text.strip()
        elif isinstance(user_text, Mapping):
            if not definition.accepts_structured_prompt:
                raise ValidationError(
                    f"Agent '{definition.name}' expects prompt to be a string. "
                    "Structured prompt objects are only supported by agents that opt in."
                )
            text = format_structured_prompt(user_text)
        else:
            text = ""

        if not text:
            raise ValidationError(MISSING_PROMPT_MESSAGE)
        return text


def _has_prompt(user_text: Any) -> bool:
    if isinstance(user_text, str):
        return bool(user_text.strip())
    return isinstance(user_text, Mapping)


def new_session_id() -> str:
    return f"session-{uuid4().hex}"


def format_structured_prompt(fields: Mapping[str, Any]) -> str:
    """Render a structured prompt object as labelled lines for the model."""

    lines = []
    for key, value in fields.items():
        if value is None:
            continue
        label = str(key)
        if isinstance(value, str):
            if value.strip():
                lines.append(f"{label}: {value.strip()}")
        else:
            lines.append(f"{label} (JSON): {json.dumps(value, ensure_ascii=False)}")

    # An empty object still reaches the model as text.
    return "\n".join(lines) if lines else json.dumps(dict(fields), ensure_ascii=False)
