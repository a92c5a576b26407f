"""
LLM provider integrations for the Pathway runtime.

The Anthropic Messages API backs both the agent tool loop and single-prompt
structured generation. Additional providers should expose ``send_messages``
and ``generate`` so higher layers can swap implementations.
"""

from .anthropic import JSON_RESPONSE_FORMAT, AnthropicClient, AnthropicError
from .types import (
    LLMMessage,
    LLMResult,
    ToolCall,
    ToolDefinition,
    UsageMetrics,
)

__all__ = [
    "JSON_RESPONSE_FORMAT",
    "AnthropicClient",
    "AnthropicError",
    "LLMMessage",
    "LLMResult",
    "ToolCall",
    "ToolDefinition",
    "UsageMetrics",
]
