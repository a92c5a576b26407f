from __future__ import annotations

import json
from typing import Any

import pytest

from pathway_core.json_extract import extract_json, find_balanced_span, normalize_json_text, strip_code_fence


def test_fenced_json_after_prose() -> None:
    text = 'Here is the result: ```json\n{"a":1}\n```'
    assert extract_json(text) == {"a": 1}


def test_whole_fenced_document_with_uppercase_tag() -> None:
    assert extract_json("```JSON\n[1, 2, 3]\n```") == [1, 2, 3]


def test_braces_inside_strings_do_not_end_the_scan() -> None:
    text = 'Result: {"note":"use { and } carefully"} thanks!'
    assert extract_json(text) == {"note": "use { and } carefully"}


def test_escaped_quotes_inside_strings() -> None:
    text = 'prefix {"q": "say \\"hi\\" {"} suffix'
    assert extract_json(text) == {"q": 'say "hi" {'}


def test_array_depth_only_counts_brackets() -> None:
    text = 'Items: [1, [2, 3], {"a": [4]}] done'
    assert extract_json(text) == [1, [2, 3], {"a": [4]}]


def test_empty_and_non_string_inputs_return_none() -> None:
    assert extract_json("") is None
    assert extract_json("   \n\t") is None
    assert extract_json(None) is None
    assert extract_json(42) is None


def test_prose_without_json_returns_none() -> None:
    assert extract_json("I could not find any jobs for that query.") is None


def test_unbalanced_candidate_returns_none() -> None:
    assert extract_json('The payload was {"a": 1, "b": [2') is None


def test_no_alternate_start_index_is_tried() -> None:
    assert extract_json('{not json} and later {"a": 1}') is None


def test_trailing_commas_are_normalized() -> None:
    assert extract_json('Output: {"a": 1, "b": [1, 2,],}') == {"a": 1, "b": [1, 2]}


def test_smart_quotes_are_normalized() -> None:
    assert extract_json("{\u201ca\u201d: 1}") == {"a": 1}


def test_comments_are_stripped() -> None:
    text = '{\n  // the id\n  "a": 1, /* inline */\n  "b": "http://example.com"\n}'
    assert extract_json(text) == {"a": 1, "b": "http://example.com"}


def test_direct_scalar_document() -> None:
    assert extract_json("42") == 42
    assert extract_json('"just a string"') == "just a string"


def test_extraction_is_idempotent() -> None:
    text = 'Sure thing:\n```json\n{"roles": ["dev", "ops"], "count": 2}\n```'
    first = extract_json(text)
    second = extract_json(text)
    assert first == second == {"roles": ["dev", "ops"], "count": 2}


_VALUES = [
    {"a": 1},
    {"nested": {"list": [1, {"x": "}"}], "flag": True}, "none": None},
    {"quote": 'he said "{" and left', "path": "C:\\temp\\{x}"},
    [{"id": 1, "tags": ["a]", "[b"]}, {"id": 2, "tags": []}],
    {"unicode": "caf\u00e9 \u2013 ok", "num": -1.5e3},
]


def _embed_in_fence(value: Any) -> str:
    return f"Sure!\n```json\n{json.dumps(value)}\n```\nLet me know if you need more."


def _embed_in_prose(value: Any) -> str:
    return f"The answer is {json.dumps(value, indent=2)} -- hope this helps."


@pytest.mark.parametrize("value", _VALUES)
@pytest.mark.parametrize("embed", [_embed_in_fence, _embed_in_prose])
def test_embedded_values_round_trip(value: Any, embed) -> None:
    assert extract_json(embed(value)) == value


def test_helpers() -> None:
    assert strip_code_fence("```json\n{}\n```") == "{}"
    assert find_balanced_span('x {"a": "}"} y') == '{"a": "}"}'
    assert find_balanced_span("no json") is None
    assert normalize_json_text("[1, 2, ]") == "[1, 2 ]"


def test_trailing_comma_cleanup_leaves_string_contents_alone() -> None:
    assert extract_json('{"a": "x, ]", "b": 1,}') == {"a": "x, ]", "b": 1}
    assert extract_json('Result: ["one, }", "two",]') == ["one, }", "two"]
