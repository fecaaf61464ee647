"""gitscribe - AI-generated Conventional Commit messages for staged changes."""

from importlib import import_module
from typing import TYPE_CHECKING

__version__ = "0.1.0"

# Public API (lazy-exported to avoid import-time side effects)
__all__ = [
    # Config
    "Config", "load_config",
    # Git
    "GitRepo",
    # Prompting and validation
    "DiffContext", "PromptCustomization", "RefinementContext",
    "validate_commit_message",
    # Orchestration
    "GenerationSession", "GenerationSettings", "SessionState",
    # Providers
    "create_driver", "CancellationToken",
    # Exceptions
    "GitScribeError", "ProviderUnavailable", "ProviderTimeout",
    "ProviderError", "ValidationExhausted", "Cancelled",
]


def __getattr__(name: str):
    """Lazy attribute loader so importing the package stays cheap.

    Provider SDKs (openai, httpx) are only imported once something that
    needs them is accessed.
    """
    mapping = {
        # Config
        "Config": ("gitscribe.config", "Config"),
        "load_config": ("gitscribe.config", "load_config"),
        # Git
        "GitRepo": ("gitscribe.git", "GitRepo"),
        # Prompting and validation
        "DiffContext": ("gitscribe.prompt", "DiffContext"),
        "PromptCustomization": ("gitscribe.prompt", "PromptCustomization"),
        "RefinementContext": ("gitscribe.prompt", "RefinementContext"),
        "validate_commit_message": (
            "gitscribe.validation",
            "validate_commit_message",
        ),
        # Orchestration
        "GenerationSession": ("gitscribe.orchestrator", "GenerationSession"),
        "GenerationSettings": ("gitscribe.orchestrator", "GenerationSettings"),
        "SessionState": ("gitscribe.orchestrator", "SessionState"),
        # Providers
        "create_driver": ("gitscribe.providers.registry", "create_driver"),
        "CancellationToken": (
            "gitscribe.providers.transport",
            "CancellationToken",
        ),
        # Exceptions
        "GitScribeError": ("gitscribe.exceptions", "GitScribeError"),
        "ProviderUnavailable": ("gitscribe.exceptions", "ProviderUnavailable"),
        "ProviderTimeout": ("gitscribe.exceptions", "ProviderTimeout"),
        "ProviderError": ("gitscribe.exceptions", "ProviderError"),
        "ValidationExhausted": ("gitscribe.exceptions", "ValidationExhausted"),
        "Cancelled": ("gitscribe.exceptions", "Cancelled"),
    }
    if name in mapping:
        mod_name, attr = mapping[name]
        mod = import_module(mod_name)
        value = getattr(mod, attr)
        globals()[name] = value  # cache for future access
        return value
    raise AttributeError(f"module 'gitscribe' has no attribute {name!r}")


if TYPE_CHECKING:
    from .config import Config, load_config
    from .exceptions import (
        Cancelled,
        GitScribeError,
        ProviderError,
        ProviderTimeout,
        ProviderUnavailable,
        ValidationExhausted,
    )
    from .git import GitRepo
    from .orchestrator import (
        GenerationSession,
        GenerationSettings,
        SessionState,
    )
    from .prompt import DiffContext, PromptCustomization, RefinementContext
    from .providers.registry import create_driver
    from .providers.transport import CancellationToken
    from .validation import validate_commit_message
