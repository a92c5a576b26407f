"""Recover a JSON value embedded in free-form model output.

Model replies mix prose, markdown fences and JSON. ``extract_json`` isolates
the first JSON object or array it can find and parses it, returning ``None``
when nothing usable is present. It never raises.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional


_LEADING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\s*```\s*$")
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT = re.compile(r"(^|\n)[ \t]*//[^\n]*")

_SMART_QUOTES = str.maketrans(
    {
        "\u201c": '"',
        "\u201d": '"',
        "\u2018": "'",
        "\u2019": "'",
    }
)

_CLOSERS = {"{": "}", "[": "]"}
_MISSING = object()


def strip_code_fence(text: str) -> str:
    """Remove one leading and one trailing triple-backtick fence."""

    unfenced = _LEADING_FENCE.sub("", text, count=1)
    unfenced = _TRAILING_FENCE.sub("", unfenced, count=1)
    return unfenced.strip()


def normalize_json_text(candidate: str) -> str:
    """Best-effort cleanup of near-JSON emitted by models."""

    cleaned = candidate.translate(_SMART_QUOTES)
    cleaned = _BLOCK_COMMENT.sub("", cleaned)
    cleaned = _LINE_COMMENT.sub(r"\1", cleaned)
    cleaned = _strip_trailing_commas(cleaned)
    return cleaned.strip()


def find_balanced_span(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` or ``[...]`` substring, if any.

    Only the delimiter type that opened the span counts toward depth, and
    characters inside double-quoted strings are ignored.
    """

    match = re.search(r"[\[{]", text)
    if match is None:
        return None

    start = match.start()
    opener = text[start]
    closer = _CLOSERS[opener]
    depth = 0
    in_string = False
    escaped = False

    for index in range(start, len(text)):
        char = text[index]

        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
            continue

        if char == opener:
            depth += 1
        elif char == closer:
            depth -= 1

        if depth == 0:
            return text[start : index + 1]

    return None


def extract_json(text: Any) -> Any:
    """Parse the JSON value embedded in ``text`` or return ``None``."""

    if not isinstance(text, str):
        return None
    raw = text.strip()
    if not raw:
        return None

    unfenced = strip_code_fence(raw)

    parsed = _loads(unfenced)
    if parsed is not _MISSING:
        return parsed

    candidate = find_balanced_span(unfenced)
    if candidate is None:
        return None

    parsed = _loads(candidate)
    if parsed is _MISSING:
        parsed = _loads(normalize_json_text(candidate))
    return None if parsed is _MISSING else parsed


def _strip_trailing_commas(text: str) -> str:
    """Drop commas that directly precede a closing bracket, outside strings."""

    out: list[str] = []
    in_string = False
    escaped = False
    length = len(text)

    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == ",":
            ahead = index + 1
            while ahead < length and text[ahead].isspace():
                ahead += 1
            if ahead < length and text[ahead] in "}]":
                continue
        out.append(char)

    return "".join(out)


def _loads(candidate: str) -> Any:
    if not candidate:
        return _MISSING
    try:
        return json.loads(candidate)
    except (json.JSONDecodeError, RecursionError):
        return _MISSING
