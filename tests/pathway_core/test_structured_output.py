from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Union

import pytest

from pathway_core.errors import UnparseableOutputError, UpstreamError, ValidationError
from pathway_core.llm import AnthropicError, LLMResult
from pathway_core.structured_output import (
    REPAIR_INPUT_LIMIT,
    StructuredOutputGenerator,
    StructuredOutputRequest,
    build_repair_prompt,
)

SCHEMA = '{"title": string, "skills": string[]}'


class ScriptedGenerator:
    """Text generator that replays canned replies and records each call."""

    def __init__(self, replies: Sequence[Union[LLMResult, Exception]]) -> None:
        self._replies = list(replies)
        self.calls: List[Dict[str, Any]] = []

    def generate(
        self,
        prompt: str,
        *,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        response_format: Optional[str] = None,
    ) -> LLMResult:
        self.calls.append(
            {
                "prompt": prompt,
                "temperature": temperature,
                "max_output_tokens": max_output_tokens,
                "response_format": response_format,
            }
        )
        if not self._replies:
            raise AssertionError("No scripted replies left.")
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def _request(**overrides: Any) -> StructuredOutputRequest:
    params: Dict[str, Any] = {
        "prompt": "Describe a backend engineer role as JSON.",
        "schema_description": SCHEMA,
        "temperature": 0.4,
        "max_output_tokens": 800,
    }
    params.update(overrides)
    return StructuredOutputRequest(**params)


def test_valid_first_response_needs_no_repair() -> None:
    client = ScriptedGenerator([LLMResult(text='{"title": "Backend", "skills": ["go"]}', stop_reason="end_turn")])

    result = StructuredOutputGenerator(client).generate(_request())

    assert result.value == {"title": "Backend", "skills": ["go"]}
    assert result.finish_reason == "end_turn"
    assert result.repaired is False
    assert result.truncated is False
    assert len(client.calls) == 1
    assert client.calls[0]["temperature"] == 0.4
    assert client.calls[0]["max_output_tokens"] == 800
    assert client.calls[0]["response_format"] == "application/json"


def test_malformed_then_valid_returns_repaired_value() -> None:
    client = ScriptedGenerator(
        [
            LLMResult(text="Sure! Here is the role: title Backend, skills go", stop_reason="end_turn"),
            LLMResult(text='{"title": "Backend", "skills": ["go", "sql"]}', stop_reason="end_turn"),
        ]
    )

    result = StructuredOutputGenerator(client).generate(_request())

    assert result.value == {"title": "Backend", "skills": ["go", "sql"]}
    assert result.repaired is True
    assert len(client.calls) == 2

    repair_call = client.calls[1]
    assert repair_call["temperature"] == pytest.approx(0.1)
    assert SCHEMA in repair_call["prompt"]
    assert "No markdown, no code fences, no comments." in repair_call["prompt"]
    assert "double quotes" in repair_call["prompt"]
    assert "title Backend, skills go" in repair_call["prompt"]


def test_two_malformed_responses_raise_with_bounded_snippet() -> None:
    garbage = "not json at all " * 400
    client = ScriptedGenerator(
        [
            LLMResult(text=garbage, stop_reason="end_turn"),
            LLMResult(text=garbage, stop_reason="max_tokens"),
        ]
    )

    with pytest.raises(UnparseableOutputError) as excinfo:
        StructuredOutputGenerator(client).generate(_request())

    error = excinfo.value
    assert error.snippet
    assert len(error.snippet) <= 2000
    assert error.finish_reason == "max_tokens"
    assert len(client.calls) == 2


def test_repair_prompt_bounds_the_first_output() -> None:
    prompt = build_repair_prompt(SCHEMA, "x" * (REPAIR_INPUT_LIMIT + 5000))

    assert "x" * REPAIR_INPUT_LIMIT in prompt
    assert "x" * (REPAIR_INPUT_LIMIT + 1) not in prompt


def test_truncated_but_parseable_output_is_flagged() -> None:
    client = ScriptedGenerator([LLMResult(text='{"title": "Backend"}', stop_reason="max_tokens")])

    result = StructuredOutputGenerator(client).generate(_request())

    assert result.value == {"title": "Backend"}
    assert result.truncated is True


def test_normalizable_output_does_not_trigger_repair() -> None:
    client = ScriptedGenerator([LLMResult(text='```json\n{"title": "Backend", "skills": ["go",],}\n```')])

    result = StructuredOutputGenerator(client).generate(_request())

    assert result.value == {"title": "Backend", "skills": ["go"]}
    assert result.repaired is False


def test_upstream_failure_is_not_reported_as_unparseable() -> None:
    client = ScriptedGenerator([AnthropicError(status_code=529, message="Overloaded")])

    with pytest.raises(UpstreamError) as excinfo:
        StructuredOutputGenerator(client).generate(_request())

    assert not isinstance(excinfo.value, UnparseableOutputError)
    assert len(client.calls) == 1


def test_repair_temperature_never_exceeds_request_temperature() -> None:
    client = ScriptedGenerator([LLMResult(text="nope"), LLMResult(text="[1]")])

    StructuredOutputGenerator(client).generate(_request(temperature=0.05))

    assert client.calls[1]["temperature"] == pytest.approx(0.05)


def test_missing_prompt_or_schema_is_rejected() -> None:
    generator = StructuredOutputGenerator(ScriptedGenerator([]))

    with pytest.raises(ValidationError):
        generator.generate(_request(prompt="  "))
    with pytest.raises(ValidationError):
        generator.generate(_request(schema_description=""))
