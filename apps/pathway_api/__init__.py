"""
HTTP surface for the Pathway agent runtime.

Framework-specific adapters import the ``AgentTurnsAPI`` facade defined here
to wire endpoints without reaching into runtime internals.
"""

from .turns import AgentTurnsAPI

__all__ = ["AgentTurnsAPI"]
