from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from .errors import ValidationError
from .llm import AnthropicClient, LLMMessage, LLMResult, ToolDefinition

MessageInput = Union[LLMMessage, Mapping[str, Any]]
ToolInput = Union[ToolDefinition, Mapping[str, Any]]


class UnknownProviderError(ValidationError):
    """Raised when a caller references a provider that is not registered."""


@dataclass
class ProviderConfig:
    """Lightweight provider registry entry."""

    key: str
    kind: str


class ProviderRouter:
    """Route chat and single-prompt calls to a configured provider client."""

    def __init__(
        self,
        *,
        anthropic_client: Optional[AnthropicClient] = None,
        providers: Optional[Iterable[ProviderConfig]] = None,
        default_provider: str = "anthropic",
    ) -> None:
        self._anthropic_client = anthropic_client
        self._providers = {provider.key: provider for provider in providers or []}
        if "anthropic" not in self._providers:
            self._providers["anthropic"] = ProviderConfig(key="anthropic", kind="anthropic")
        self.default_provider = default_provider

        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def client_for(self, provider: Optional[str] = None) -> AnthropicClient:
        provider_key = (provider or self.default_provider).lower().strip()
        config = self._providers.get(provider_key)
        if config is None:
            raise UnknownProviderError(f"Provider '{provider}' is not registered with this router.")
        if config.kind == "anthropic":
            return self._ensure_anthropic_client()
        raise UnknownProviderError(f"Provider '{provider}' is not supported by this router.")

    def send(
        self,
        *,
        provider: str,
        model: Optional[str],
        messages: Sequence[MessageInput],
        tools: Optional[Sequence[ToolInput]] = None,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        tool_choice: Optional[Mapping[str, Any]] = None,
    ) -> LLMResult:
        """Dispatch a chat request to a provider."""

        client = self.client_for(provider)
        return client.send_messages(
            normalise_messages(messages),
            tools=normalise_tools(tools),
            system=system,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            metadata=metadata,
            tool_choice=tool_choice,
        )

    def generate(
        self,
        prompt: str,
        *,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        response_format: Optional[str] = None,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> LLMResult:
        """Single-prompt generation; satisfies the structured-output client protocol."""

        client = self.client_for(provider)
        return client.generate(
            prompt,
            temperature=temperature,
            max_output_tokens=max_output_tokens,
            response_format=response_format,
            model=model,
        )

    @classmethod
    def lazy_default(cls) -> "ProviderRouter":
        return cls()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _ensure_anthropic_client(self) -> AnthropicClient:
        with self._lock:
            if self._anthropic_client is None:
                self._anthropic_client = AnthropicClient()
            return self._anthropic_client


def normalise_messages(messages: Sequence[MessageInput]) -> List[LLMMessage]:
    normalised: List[LLMMessage] = []
    for entry in messages:
        if isinstance(entry, LLMMessage):
            normalised.append(entry)
            continue

        if not isinstance(entry, Mapping):
            raise TypeError(f"Unsupported message input type: {type(entry)!r}")

        role = entry.get("role")
        content = entry.get("content")
        if not isinstance(role, str):
            raise ValueError("Message role must be a string.")
        if content is None:
            raise ValueError("Message content cannot be None.")
        normalised.append(LLMMessage(role=role, content=content))

    return normalised


def normalise_tools(tools: Optional[Sequence[ToolInput]]) -> Optional[List[ToolDefinition]]:
    if not tools:
        return None

    normalised: List[ToolDefinition] = []
    for tool in tools:
        if isinstance(tool, ToolDefinition):
            normalised.append(tool)
            continue

        if not isinstance(tool, Mapping):
            raise TypeError(f"Unsupported tool input type: {type(tool)!r}")

        name = tool.get("name")
        description = tool.get("description")
        input_schema = tool.get("input_schema") or tool.get("parameters")
        metadata = tool.get("metadata")

        if not isinstance(name, str) or not name.strip():
            raise ValueError("Tool definition must include a non-empty 'name'.")
        if not isinstance(description, str) or not description.strip():
            raise ValueError("Tool definition must include a non-empty 'description'.")
        if not isinstance(input_schema, Mapping):
            raise ValueError("Tool definition must include an 'input_schema' object.")

        normalised.append(
            ToolDefinition(
                name=name.strip(),
                description=description.strip(),
                input_schema=dict(input_schema),
                metadata=dict(metadata) if isinstance(metadata, Mapping) else None,
            )
        )

    return normalised
