"""Generate-then-repair protocol for schema-constrained model output.

The generator asks a text model for JSON, validates the reply with the
embedded JSON extractor and, if the reply cannot be parsed, spends a single
repair call before giving up with ``UnparseableOutputError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol

from .errors import ValidationError, UnparseableOutputError
from .json_extract import extract_json
from .llm.anthropic import JSON_RESPONSE_FORMAT
from .llm.types import TRUNCATION_STOP_REASONS, LLMResult

LOGGER = logging.getLogger(__name__)

REPAIR_INPUT_LIMIT = 12000
DEFAULT_REPAIR_TEMPERATURE = 0.1


class TextGenerator(Protocol):
    """Anything that turns one prompt into text plus a finish reason."""

    def generate(
        self,
        prompt: str,
        *,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        response_format: Optional[str] = None,
    ) -> LLMResult: ...


class GenerationState(str, Enum):
    GENERATING = "generating"
    VALIDATING = "validating"
    REPAIRING = "repairing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class StructuredOutputRequest:
    """Caller-supplied parameters for one structured generation."""

    prompt: str
    schema_description: str
    temperature: float = 0.4
    max_output_tokens: int = 3600
    response_format: Optional[str] = JSON_RESPONSE_FORMAT
    repair_temperature: float = DEFAULT_REPAIR_TEMPERATURE


@dataclass
class StructuredOutputResult:
    value: Any
    finish_reason: Optional[str] = None
    repaired: bool = False
    raw_text: str = ""

    @property
    def truncated(self) -> bool:
        """True when the model stopped on its output limit but still parsed."""

        return self.finish_reason in TRUNCATION_STOP_REASONS


def build_repair_prompt(schema_description: str, raw_output: str) -> str:
    return (
        "You are a JSON repair tool. Regenerate STRICT valid minified JSON ONLY.\n\n"
        "JSON SCHEMA (must match exactly):\n"
        f"{schema_description}\n\n"
        "IMPORTANT RULES:\n"
        "- Return ONLY a single JSON object.\n"
        "- Use double quotes for all keys and string values.\n"
        "- No markdown, no code fences, no comments.\n"
        "- Ensure the JSON is COMPLETE (must end with a closing }).\n\n"
        "OUTPUT TO FIX (may be truncated / may include extra text):\n"
        f"{(raw_output or '')[:REPAIR_INPUT_LIMIT]}\n\n"
        "Return ONLY JSON."
    )


class StructuredOutputGenerator:
    """Drive one request through ``GenerationState`` until it succeeds or fails."""

    def __init__(self, client: TextGenerator, *, logger: Optional[logging.Logger] = None) -> None:
        self.client = client
        self.logger = logger or LOGGER

    def generate(self, request: StructuredOutputRequest) -> StructuredOutputResult:
        if not isinstance(request.prompt, str) or not request.prompt.strip():
            raise ValidationError("Structured output request requires a non-empty prompt.")
        if not isinstance(request.schema_description, str) or not request.schema_description.strip():
            raise ValidationError("Structured output request requires a schema description.")

        state = GenerationState.GENERATING
        repair_used = False
        first_output: Optional[LLMResult] = None
        latest: Optional[LLMResult] = None
        value: Any = None

        while state not in (GenerationState.SUCCEEDED, GenerationState.FAILED):
            self.logger.debug("Structured output state=%s", state.value)

            if state is GenerationState.GENERATING:
                latest = self._call(request.prompt, request, temperature=request.temperature)
                first_output = latest
                state = GenerationState.VALIDATING

            elif state is GenerationState.VALIDATING:
                value = extract_json(latest.text if latest else "")
                if value is not None:
                    state = GenerationState.SUCCEEDED
                elif repair_used:
                    state = GenerationState.FAILED
                else:
                    state = GenerationState.REPAIRING

            elif state is GenerationState.REPAIRING:
                repair_used = True
                self.logger.info(
                    "Model output was not valid JSON (finish_reason=%s); attempting one repair",
                    latest.stop_reason if latest else None,
                )
                prompt = build_repair_prompt(request.schema_description, first_output.text if first_output else "")
                latest = self._call(
                    prompt,
                    request,
                    temperature=min(request.repair_temperature, request.temperature),
                )
                state = GenerationState.VALIDATING

        if state is GenerationState.FAILED:
            snippet = (latest.text if latest and latest.text else "") or (first_output.text if first_output else "")
            self.logger.warning("Structured output failed after repair; snippet_chars=%s", len(snippet))
            raise UnparseableOutputError(
                "Failed to parse model JSON after one repair attempt.",
                snippet,
                finish_reason=latest.stop_reason if latest else None,
            )

        return StructuredOutputResult(
            value=value,
            finish_reason=latest.stop_reason if latest else None,
            repaired=repair_used,
            raw_text=latest.text if latest else "",
        )

    def _call(self, prompt: str, request: StructuredOutputRequest, *, temperature: float) -> LLMResult:
        return self.client.generate(
            prompt,
            temperature=temperature,
            max_output_tokens=request.max_output_tokens,
            response_format=request.response_format,
        )
