"""Events emitted by an agent runtime while it works through one turn."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union


@dataclass(frozen=True)
class ModelTextDelta:
    """A fragment of model-authored text, in arrival order."""

    text: str
    finish_reason: Optional[str] = None


@dataclass(frozen=True)
class ToolResult:
    """Structured value returned by a tool during the turn."""

    name: str
    value: Any
    is_error: bool = False
    finish_reason: Optional[str] = None


@dataclass(frozen=True)
class OtherEvent:
    """Anything else the runtime reports.

    ``text`` is set when the event carries free text, e.g. a tool integration
    that only reports its result as serialized output.
    """

    kind: str
    text: Optional[str] = None
    finish_reason: Optional[str] = None


Event = Union[ModelTextDelta, ToolResult, OtherEvent]
