from __future__ import annotations

from typing import Any, AsyncIterator, Iterable

import pytest

from pathway_agents.runtime import (
    UNKNOWN_TOOL_NAME,
    EventStreamConsumer,
    ModelTextDelta,
    OtherEvent,
    ToolResult,
)


async def _stream(events: Iterable[Any]) -> AsyncIterator[Any]:
    for event in events:
        yield event


@pytest.mark.asyncio
async def test_text_deltas_concatenate_in_arrival_order() -> None:
    outcome = await EventStreamConsumer().consume(
        _stream([ModelTextDelta("Hello, "), ModelTextDelta("world"), ModelTextDelta("!")])
    )

    assert outcome.text == "Hello, world!"
    assert outcome.tool_results == {}


@pytest.mark.asyncio
async def test_later_tool_result_replaces_earlier_one() -> None:
    outcome = await EventStreamConsumer().consume(
        _stream(
            [
                ToolResult("generateJson", {"result": {"v": 1}}),
                ModelTextDelta("retrying"),
                ToolResult("generateJson", {"result": {"v": 2}}),
                ToolResult("searchJobs", {"items": []}),
            ]
        )
    )

    assert outcome.tool_results == {"generateJson": {"result": {"v": 2}}, "searchJobs": {"items": []}}


@pytest.mark.asyncio
async def test_other_event_text_is_recovered_under_unknown() -> None:
    outcome = await EventStreamConsumer().consume(
        _stream(
            [
                OtherEvent(kind="tool_output", text='Tool said: {"match": 0.8}'),
                OtherEvent(kind="status", text="thinking..."),
                OtherEvent(kind="tool_output", text="42"),
            ]
        )
    )

    assert outcome.tool_results == {UNKNOWN_TOOL_NAME: {"match": 0.8}}
    assert outcome.text == ""


@pytest.mark.asyncio
async def test_finish_reason_tracks_last_reported_value() -> None:
    outcome = await EventStreamConsumer().consume(
        _stream(
            [
                ModelTextDelta("partial", finish_reason="max_tokens"),
                ModelTextDelta(" more"),
                OtherEvent(kind="turn_complete", finish_reason="end_turn"),
            ]
        )
    )

    assert outcome.finish_reason == "end_turn"
    assert outcome.text == "partial more"


@pytest.mark.asyncio
async def test_empty_stream_produces_empty_outcome() -> None:
    outcome = await EventStreamConsumer().consume(_stream([]))

    assert outcome.text == ""
    assert outcome.tool_results == {}
    assert outcome.finish_reason is None
