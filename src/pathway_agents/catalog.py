"""Agent definitions and the catalog that serves them to the turn runner."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from pathway_core.errors import UnknownAgentError, ValidationError

from .runtime.tools import AgentTool

logger = logging.getLogger(__name__)


class AgentDefinition(BaseModel):
    """Static configuration of one agent.

    ``preferred_tool`` names the tool whose result is returned verbatim when
    the tool ran during a turn; schema-critical agents set it.
    """

    name: str
    description: str = ""
    instructions: str = ""
    provider: str = "anthropic"
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = Field(default=None, gt=0)
    preferred_tool: Optional[str] = None
    accepts_structured_prompt: bool = False
    tool_names: List[str] = Field(default_factory=list)


class AgentCatalog:
    """Thread-safe registry of agent definitions plus their bound tools."""

    def __init__(self, agents: Optional[Iterable[AgentDefinition]] = None) -> None:
        self._agents: Dict[str, AgentDefinition] = {}
        self._tools: Dict[str, Dict[str, AgentTool]] = {}
        self._lock = threading.Lock()
        for agent in agents or []:
            self.register(agent)

    def register(self, agent: AgentDefinition, tools: Sequence[AgentTool] = ()) -> AgentDefinition:
        if not agent.name.strip():
            raise ValidationError("Agent definition must include a non-empty 'name'.")

        bound = {tool.name: tool for tool in tools}
        names = list(agent.tool_names)
        for tool_name in bound:
            if tool_name not in names:
                names.append(tool_name)
        stored = agent.model_copy(update={"tool_names": names})

        with self._lock:
            self._agents[stored.name] = stored
            self._tools[stored.name] = bound
        logger.debug("Registered agent %s with tools=%s", stored.name, names)
        return stored

    def attach_tool(self, agent_name: str, tool: AgentTool) -> None:
        agent = self.get(agent_name)
        with self._lock:
            self._tools.setdefault(agent_name, {})[tool.name] = tool
            if tool.name not in agent.tool_names:
                self._agents[agent_name] = agent.model_copy(
                    update={"tool_names": [*agent.tool_names, tool.name]}
                )

    def get(self, name: str) -> AgentDefinition:
        with self._lock:
            agent = self._agents.get(name)
            if agent is None:
                raise UnknownAgentError(name, sorted(self._agents))
            return agent

    def tools_for(self, name: str) -> List[AgentTool]:
        agent = self.get(name)
        with self._lock:
            bound = self._tools.get(name, {})
            missing = [tool_name for tool_name in agent.tool_names if tool_name not in bound]
            tools = [bound[tool_name] for tool_name in agent.tool_names if tool_name in bound]
        if missing:
            logger.warning("Agent %s lists tools with no implementation: %s", name, ", ".join(missing))
        return tools

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._agents)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._agents

    def __len__(self) -> int:
        with self._lock:
            return len(self._agents)

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #

    @classmethod
    def from_file(
        cls,
        path: Path,
        *,
        tool_factory: Optional[Callable[[str], Optional[AgentTool]]] = None,
    ) -> "AgentCatalog":
        """Load agent definitions from ``{"agents": [...]}`` or a bare list.

        ``tool_factory`` resolves tool names listed by each agent into
        implementations; names it cannot resolve are left unbound.
        """

        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        items: Iterable[Any]
        if isinstance(raw, Mapping):
            items = raw.get("agents") or []
        elif isinstance(raw, list):
            items = raw
        else:
            raise ValidationError(f"Agent file {path} must contain a list or an 'agents' array.")

        catalog = cls()
        for item in items:
            if not isinstance(item, Mapping):
                raise ValidationError(f"Agent entries in {path} must be objects.")
            agent = AgentDefinition(**item)
            tools: List[AgentTool] = []
            if tool_factory is not None:
                for tool_name in agent.tool_names:
                    tool = tool_factory(tool_name)
                    if tool is not None:
                        tools.append(tool)
            catalog.register(agent, tools)

        logger.info("Loaded %s agents from %s", len(catalog), path)
        return catalog


def default_catalog() -> AgentCatalog:
    """Single general-purpose agent used when no agent file is configured."""

    return AgentCatalog(
        [
            AgentDefinition(
                name="assistant",
                description="General-purpose conversational agent.",
                instructions="You are a helpful assistant. When asked for structured data, reply with JSON only.",
            )
        ]
    )
