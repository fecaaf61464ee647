"""Static identities of every supported provider."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ModelDefinition:
    """One selectable model; lower ``priority`` sorts first."""

    id: str
    name: str
    priority: int = 100
    deprecated: bool = False


class ProviderMode(str, enum.Enum):
    CLI = "cli"
    API = "api"


@dataclass(frozen=True)
class ProviderDescriptor:
    """Immutable identity of one backend.

    CLI providers carry the ``binary`` they spawn; API providers carry the
    ``base_url`` they call and the environment variable holding their key.
    """

    id: str
    name: str
    mode: ProviderMode
    default_model: str
    binary: Optional[str] = None
    base_url: Optional[str] = None
    api_key_env: Optional[str] = None


PROVIDERS: dict[str, ProviderDescriptor] = {
    "claude-code": ProviderDescriptor(
        id="claude-code",
        name="Claude Code",
        mode=ProviderMode.CLI,
        default_model="haiku",
        binary="claude",
    ),
    "gemini-cli": ProviderDescriptor(
        id="gemini-cli",
        name="Gemini CLI",
        mode=ProviderMode.CLI,
        default_model="gemini-2.5-flash",
        binary="gemini",
    ),
    "codex": ProviderDescriptor(
        id="codex",
        name="Codex",
        mode=ProviderMode.CLI,
        default_model="gpt-5-codex",
        binary="codex",
    ),
    "openrouter": ProviderDescriptor(
        id="openrouter",
        name="OpenRouter",
        mode=ProviderMode.API,
        default_model="anthropic/claude-3.5-haiku",
        base_url="https://openrouter.ai/api/v1",
        api_key_env="OPENROUTER_API_KEY",
    ),
    "openai": ProviderDescriptor(
        id="openai",
        name="OpenAI",
        mode=ProviderMode.API,
        default_model="gpt-5-mini",
        base_url="https://api.openai.com/v1",
        api_key_env="OPENAI_API_KEY",
    ),
    "google-ai-studio": ProviderDescriptor(
        id="google-ai-studio",
        name="Google AI Studio",
        mode=ProviderMode.API,
        default_model="gemini-2.5-flash",
        base_url="https://generativelanguage.googleapis.com/v1beta",
        api_key_env="GEMINI_API_KEY",
    ),
    "anthropic": ProviderDescriptor(
        id="anthropic",
        name="Anthropic",
        mode=ProviderMode.API,
        default_model="claude-3-5-haiku-latest",
        base_url="https://api.anthropic.com",
        api_key_env="ANTHROPIC_API_KEY",
    ),
    "cerebras": ProviderDescriptor(
        id="cerebras",
        name="Cerebras",
        mode=ProviderMode.API,
        default_model="llama-3.3-70b",
        base_url="https://api.cerebras.ai/v1",
        api_key_env="CEREBRAS_API_KEY",
    ),
}
