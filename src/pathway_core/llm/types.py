from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Union


MessageRole = Literal["system", "user", "assistant"]
ContentBlock = Dict[str, Any]
ContentLike = Union[str, Sequence[Mapping[str, Any]]]

TRUNCATION_STOP_REASONS = frozenset({"max_tokens", "length", "MAX_TOKENS"})


@dataclass
class LLMMessage:
    """Chat message exchanged between an agent runtime and a provider."""

    role: MessageRole
    content: ContentLike

    def as_text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        fragments = [
            str(block.get("text", ""))
            for block in self.content
            if isinstance(block, Mapping) and block.get("type") == "text"
        ]
        return "".join(fragments)

    def content_blocks(self) -> List[ContentBlock]:
        """Return the message content as Anthropic-compatible blocks."""

        if isinstance(self.content, str):
            text = self.content.strip()
            if not text:
                return []
            return [{"type": "text", "text": text}]

        blocks: List[ContentBlock] = []
        for block in self.content:
            if not isinstance(block, Mapping):
                raise TypeError(f"Unsupported content block type: {type(block)!r}")
            # Copy so a later turn cannot mutate committed history.
            blocks.append(dict(block))
        return blocks


@dataclass
class ToolDefinition:
    """JSON-schema definition for a callable tool exposed to models."""

    name: str
    description: str
    input_schema: Mapping[str, Any]
    metadata: Optional[Mapping[str, Any]] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "input_schema": dict(self.input_schema),
        }
        if self.metadata:
            payload["metadata"] = dict(self.metadata)
        return payload


@dataclass
class ToolCall:
    """Normalized representation of a model's tool invocation."""

    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UsageMetrics:
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


@dataclass
class LLMResult:
    """Normalized model response.

    ``text`` joins every text block; ``content_blocks`` keeps the raw blocks so
    runtimes can emit one event per block. ``stop_reason`` is the provider's
    finish reason.
    """

    text: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    stop_reason: Optional[str] = None
    model: Optional[str] = None
    usage: Optional[UsageMetrics] = None
    content_blocks: List[ContentBlock] = field(default_factory=list)
    raw: Optional[Dict[str, Any]] = None

    @property
    def finish_reason(self) -> Optional[str]:
        return self.stop_reason

    @property
    def truncated(self) -> bool:
        return self.stop_reason in TRUNCATION_STOP_REASONS
