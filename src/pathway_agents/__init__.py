"""
Agent-facing primitives for the Pathway runtime.

The runtime layer builds on top of ``pathway_core`` provider clients to run
conversational turns: tool routing, session state and response resolution.
"""

__all__ = ["catalog", "resolution", "runtime", "sessions", "turns"]
