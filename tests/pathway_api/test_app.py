from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Sequence, Union

import pytest
from fastapi.testclient import TestClient

from apps.pathway_api.app import create_app
from apps.pathway_api.turns import AgentTurnsAPI
from pathway_agents.catalog import AgentCatalog, AgentDefinition
from pathway_agents.runtime import ModelTextDelta, ToolResult
from pathway_agents.turns import TurnRunner
from pathway_core.llm import LLMResult
from pathway_core.settings import RuntimeSettings
from pathway_core.structured_output import StructuredOutputGenerator

Script = Union[Sequence[Any], Exception]


class FakeRuntime:
    def __init__(self, scripts: Sequence[Script]) -> None:
        self.scripts = list(scripts)

    def create_session(self, app_id: str, user_id: str, session_id: str, *, agent: str) -> Dict[str, Any]:
        return {"session_id": session_id, "agent": agent}

    async def submit(self, state: Dict[str, Any], user_text: str) -> AsyncIterator[Any]:
        script = self.scripts.pop(0)
        if isinstance(script, Exception):
            raise script
        for event in script:
            yield event


class ScriptedGenerator:
    def __init__(self, replies: Sequence[LLMResult]) -> None:
        self.replies = list(replies)
        self.calls: List[Dict[str, Any]] = []

    def generate(self, prompt: str, **kwargs: Any) -> LLMResult:
        self.calls.append({"prompt": prompt, **kwargs})
        return self.replies.pop(0)


def _build_client(
    scripts: Sequence[Script] = (),
    replies: Sequence[LLMResult] = (),
    *,
    debug_json: bool = False,
) -> tuple[TestClient, FakeRuntime, ScriptedGenerator]:
    settings = RuntimeSettings(debug_json=debug_json)
    catalog = AgentCatalog(
        [
            AgentDefinition(name="chat"),
            AgentDefinition(name="resume", preferred_tool="optimizeResume"),
        ]
    )
    runtime = FakeRuntime(scripts)
    generator = ScriptedGenerator(replies)
    runner = TurnRunner(catalog=catalog, runtime=runtime, settings=settings)
    api = AgentTurnsAPI(runner=runner, generator=StructuredOutputGenerator(generator), settings=settings)
    return TestClient(create_app(settings=settings, api=api)), runtime, generator


def test_agent_turn_returns_result_and_session_id() -> None:
    client, _, _ = _build_client([[ModelTextDelta('{"jobs": ["analyst"]}')], [ModelTextDelta("again")]])

    response = client.post("/api/agent/chat", json={"prompt": "Find jobs"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["result"] == {"jobs": ["analyst"]}
    session_id = body["sessionId"]
    assert session_id.startswith("session-")

    follow_up = client.post("/api/agent/chat", json={"prompt": "More", "sessionId": session_id})
    assert follow_up.status_code == 200
    assert follow_up.json()["sessionId"] == session_id
    assert follow_up.json()["result"] == "again"


def test_preferred_tool_result_is_returned() -> None:
    client, _, _ = _build_client([[ToolResult("optimizeResume", {"score": 90}), ModelTextDelta("done")]])

    response = client.post("/api/agent/resume", json={"prompt": "Optimize"})

    assert response.status_code == 200
    assert response.json()["result"] == {"score": 90}


def test_missing_prompt_is_a_bad_request() -> None:
    client, _, _ = _build_client()

    response = client.post("/api/agent/chat", json={})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": 'Missing prompt. Send { prompt: "..." }.'}


def test_missing_prompt_on_unknown_agent_is_a_bad_request() -> None:
    client, _, _ = _build_client()

    response = client.post("/api/agent/ghost", json={})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": 'Missing prompt. Send { prompt: "..." }.'}


def test_unknown_agent_is_not_found() -> None:
    client, _, _ = _build_client()

    response = client.post("/api/agent/ghost", json={"prompt": "hi"})

    assert response.status_code == 404
    assert "Available agents: chat, resume" in response.json()["error"]


def test_session_bound_to_other_agent_conflicts() -> None:
    client, _, _ = _build_client([[ModelTextDelta("hi")]])
    client.post("/api/agent/chat", json={"prompt": "hi", "sessionId": "session-shared"})

    response = client.post("/api/agent/resume", json={"prompt": "hi", "sessionId": "session-shared"})

    assert response.status_code == 409
    assert response.json()["success"] is False


def test_runtime_failure_is_bad_gateway() -> None:
    client, _, _ = _build_client([ConnectionError("upstream reset")])

    response = client.post("/api/agent/chat", json={"prompt": "hi"})

    assert response.status_code == 502
    assert "upstream reset" in response.json()["error"]


def test_structured_generation_success() -> None:
    client, _, generator = _build_client(
        replies=[LLMResult(text='{"title": "Analyst"}', stop_reason="end_turn")]
    )

    response = client.post(
        "/api/structured",
        json={"prompt": "Describe a role", "schema": {"title": "string"}, "temperature": 0.2, "maxOutputTokens": 500},
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "result": {"title": "Analyst"},
        "finishReason": "end_turn",
        "repaired": False,
    }
    assert generator.calls[0]["temperature"] == 0.2
    assert generator.calls[0]["max_output_tokens"] == 500


@pytest.mark.parametrize("debug_json", [False, True])
def test_structured_generation_failure_is_bad_gateway(debug_json: bool) -> None:
    client, _, _ = _build_client(
        replies=[LLMResult(text="no json here"), LLMResult(text="still none")],
        debug_json=debug_json,
    )

    response = client.post("/api/structured", json={"prompt": "Describe a role", "schema": "{title: string}"})

    assert response.status_code == 502
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Failed to parse model JSON after one repair attempt."
    if debug_json:
        assert body["rawOutputSnippet"] == "still none"
    else:
        assert "rawOutputSnippet" not in body


def test_structured_generation_validates_body() -> None:
    client, _, _ = _build_client()

    assert client.post("/api/structured", json={"schema": "{}"}).status_code == 400
    assert client.post("/api/structured", json={"prompt": "x"}).status_code == 400
    assert client.post("/api/structured", json={"prompt": "x", "schema": "{}", "temperature": "hot"}).status_code == 400


def test_health_and_index() -> None:
    client, _, _ = _build_client()

    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"
    assert health.json()["service"] == "pathway-agents-api"

    index = client.get("/")
    assert index.status_code == 200
    assert index.json()["endpoints"]["agents"]["available"] == ["chat", "resume"]
