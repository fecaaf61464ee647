"""Static provider registry: id -> descriptor and adapter implementation."""

from __future__ import annotations

from typing import Optional

import httpx

from ..exceptions import ConfigError
from .anthropic_driver import AnthropicDriver
from .base import APIDriver, BaseDriver, SecretLookup
from .cerebras_driver import CerebrasDriver
from .cli_drivers import ClaudeCodeDriver, CodexDriver, GeminiCLIDriver
from .descriptors import PROVIDERS, ProviderDescriptor, ProviderMode
from .google_driver import GoogleAIStudioDriver
from .openai_driver import OpenAIDriver
from .openrouter_driver import OpenRouterDriver

DRIVERS: dict[str, type[BaseDriver]] = {
    "claude-code": ClaudeCodeDriver,
    "gemini-cli": GeminiCLIDriver,
    "codex": CodexDriver,
    "openrouter": OpenRouterDriver,
    "openai": OpenAIDriver,
    "google-ai-studio": GoogleAIStudioDriver,
    "anthropic": AnthropicDriver,
    "cerebras": CerebrasDriver,
}


def get_descriptor(provider_id: str) -> ProviderDescriptor:
    try:
        return PROVIDERS[provider_id]
    except KeyError:
        known = ", ".join(sorted(PROVIDERS))
        raise ConfigError(
            f"Unknown provider '{provider_id}'. Known providers: {known}"
        ) from None


def providers_by_mode(mode: ProviderMode) -> list[ProviderDescriptor]:
    return [d for d in PROVIDERS.values() if d.mode is mode]


def create_driver(
    provider_id: str,
    *,
    secrets: Optional[SecretLookup] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    headers: Optional[dict[str, str]] = None,
) -> BaseDriver:
    """Instantiate the adapter registered for ``provider_id``.

    ``secrets``, ``http_client`` and ``headers`` only apply to API-backed
    providers; CLI adapters take nothing but their descriptor.
    """
    descriptor = get_descriptor(provider_id)
    driver_cls = DRIVERS[provider_id]
    if issubclass(driver_cls, APIDriver):
        return driver_cls(
            descriptor,
            secrets=secrets,
            http_client=http_client,
            headers=headers,
        )
    return driver_cls(descriptor)
