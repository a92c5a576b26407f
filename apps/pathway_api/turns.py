from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Mapping, Optional

from pathway_agents.turns import TurnRunner
from pathway_core.errors import ValidationError
from pathway_core.settings import RuntimeSettings
from pathway_core.structured_output import StructuredOutputGenerator, StructuredOutputRequest


class AgentTurnsAPI:
    """Facade exposing agent turns and structured generation as plain dicts."""

    def __init__(
        self,
        *,
        runner: TurnRunner,
        generator: Optional[StructuredOutputGenerator] = None,
        settings: Optional[RuntimeSettings] = None,
    ) -> None:
        self.runner = runner
        self.generator = generator
        self.settings = settings or runner.settings

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def run_agent(self, name: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        if not isinstance(payload, Mapping):
            raise ValidationError("Request body must be a JSON object.")
        prompt = payload.get("prompt")
        session_id = payload.get("sessionId", payload.get("session_id"))
        if session_id is not None and not isinstance(session_id, str):
            raise ValidationError("'sessionId' must be a string when provided.")

        response = await self.runner.run_turn(name, prompt, session_id or None)
        return response.to_dict()

    async def generate_structured(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        if self.generator is None:
            raise ValidationError("Structured generation is not configured for this service.")
        request = self._parse_structured_request(payload)
        result = await asyncio.to_thread(self.generator.generate, request)
        body: Dict[str, Any] = {
            "success": True,
            "result": result.value,
            "finishReason": result.finish_reason,
            "repaired": result.repaired,
        }
        if result.truncated:
            body["truncated"] = True
        return body

    def describe(self) -> Dict[str, Any]:
        return {
            "message": "Pathway Agents API",
            "endpoints": {
                "health": "GET /health",
                "agents": {
                    "run": "POST /api/agent/{name} { prompt, sessionId? }",
                    "available": self.runner.catalog.names(),
                },
                "structured": "POST /api/structured { prompt, schema, temperature?, maxOutputTokens? }",
            },
        }

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _parse_structured_request(self, payload: Mapping[str, Any]) -> StructuredOutputRequest:
        if not isinstance(payload, Mapping):
            raise ValidationError("Request body must be a JSON object.")

        prompt = payload.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValidationError("'prompt' must be a non-empty string.")

        schema = payload.get("schema")
        if isinstance(schema, Mapping):
            schema = json.dumps(schema, indent=2)
        if not isinstance(schema, str) or not schema.strip():
            raise ValidationError("'schema' must be a non-empty string or object.")

        request = StructuredOutputRequest(prompt=prompt, schema_description=schema)

        temperature = payload.get("temperature")
        if temperature is not None:
            if not isinstance(temperature, (int, float)) or isinstance(temperature, bool):
                raise ValidationError("'temperature' must be a number.")
            request.temperature = float(temperature)

        max_tokens = payload.get("maxOutputTokens", payload.get("max_output_tokens"))
        if max_tokens is not None:
            if not isinstance(max_tokens, int) or isinstance(max_tokens, bool) or max_tokens <= 0:
                raise ValidationError("'maxOutputTokens' must be a positive integer.")
            request.max_output_tokens = max_tokens

        return request
