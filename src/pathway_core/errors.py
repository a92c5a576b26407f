"""Error taxonomy shared by the Pathway runtime layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


SNIPPET_LIMIT = 2000


class PathwayError(Exception):
    """Base class for every error raised deliberately by Pathway."""


class ValidationError(PathwayError, ValueError):
    """Raised when caller input is missing, empty or malformed."""


class UnknownAgentError(ValidationError, LookupError):
    """Raised when a turn names an agent that is not in the catalog."""

    def __init__(self, name: str, available: Optional[list[str]] = None) -> None:
        self.name = name
        self.available = list(available or [])
        message = f"Agent '{name}' not found."
        if self.available:
            message += f" Available agents: {', '.join(self.available)}"
        super().__init__(message)


class SessionAgentMismatchError(ValidationError):
    """Raised when a session id is reused with a different agent."""

    def __init__(self, session_id: str, bound_agent: str, requested_agent: str) -> None:
        self.session_id = session_id
        self.bound_agent = bound_agent
        self.requested_agent = requested_agent
        super().__init__(
            f"Session '{session_id}' is bound to agent '{bound_agent}' and cannot be used with '{requested_agent}'."
        )


@dataclass
class ToolError(PathwayError):
    """Structured failure raised by a tool's ``execute``.

    The runtime forwards ``to_payload()`` to the model as a single error
    object instead of flattening it into a string.
    """

    code: Any
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = dict(self.details)
        return {"error": error}


class UnparseableOutputError(PathwayError):
    """Raised when model output is still not valid JSON after one repair attempt."""

    def __init__(self, message: str, snippet: str = "", *, finish_reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.snippet = (snippet or "")[:SNIPPET_LIMIT]
        self.finish_reason = finish_reason


class UpstreamError(PathwayError):
    """Raised when the agent runtime, model provider or network fails."""
