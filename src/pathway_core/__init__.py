"""
Core backend primitives for the Pathway runtime.

Modules under ``pathway_core`` provide the provider clients, JSON recovery
and structured-output generation shared by agents and APIs.
"""

from .errors import (
    PathwayError,
    SessionAgentMismatchError,
    ToolError,
    UnknownAgentError,
    UnparseableOutputError,
    UpstreamError,
    ValidationError,
)
from .json_extract import extract_json
from .structured_output import (
    GenerationState,
    StructuredOutputGenerator,
    StructuredOutputRequest,
    StructuredOutputResult,
)

__all__ = [
    "GenerationState",
    "PathwayError",
    "SessionAgentMismatchError",
    "StructuredOutputGenerator",
    "StructuredOutputRequest",
    "StructuredOutputResult",
    "ToolError",
    "UnknownAgentError",
    "UnparseableOutputError",
    "UpstreamError",
    "ValidationError",
    "extract_json",
]
