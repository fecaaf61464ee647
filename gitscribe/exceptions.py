"""Exception hierarchy for gitscribe."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from .validation import Violation


class GitScribeError(Exception):
    """Base exception for gitscribe."""


class GitError(GitScribeError):
    """Raised when a git command fails or the path is not a repository."""


class ConfigError(GitScribeError):
    """Raised for invalid or unusable configuration."""


class ProviderUnavailable(GitScribeError):
    """Credentials or the provider binary are missing."""

    def __init__(self, provider_id: str, reason: str) -> None:
        super().__init__(f"{provider_id} is unavailable: {reason}")
        self.provider_id = provider_id
        self.reason = reason


class ProviderTimeout(GitScribeError):
    """The provider did not answer before the deadline."""

    def __init__(self, provider_id: str, timeout: float) -> None:
        super().__init__(f"{provider_id} timed out after {timeout:g}s")
        self.provider_id = provider_id
        self.timeout = timeout


class ProviderError(GitScribeError):
    """The upstream service or process rejected the call.

    ``status`` is the HTTP status code or the process exit code, ``None``
    for connection-level failures. ``message`` is passed through verbatim.
    """

    def __init__(
        self, provider_id: str, status: Optional[int], message: str
    ) -> None:
        super().__init__(message)
        self.provider_id = provider_id
        self.status = status
        self.message = message


class Cancelled(GitScribeError):
    """An in-flight call was aborted through its cancellation token."""


class ValidationExhausted(GitScribeError):
    """The auto-retry bound was hit without a passing candidate."""

    def __init__(
        self, last_message: str, violations: Sequence["Violation"]
    ) -> None:
        rules = ", ".join(v.rule for v in violations) or "none"
        super().__init__(
            f"No valid commit message after retries (violations: {rules})"
        )
        self.last_message = last_message
        self.violations = list(violations)


class SessionClosed(GitScribeError):
    """An action was requested on a session that already ended."""


class ModelNotFound(GitScribeError):
    """The configured model id is not in the provider's catalog."""

    def __init__(self, provider_id: str, model_id: str) -> None:
        super().__init__(
            f"Model '{model_id}' was not found for provider {provider_id}"
        )
        self.provider_id = provider_id
        self.model_id = model_id


class ModelDeprecated(GitScribeError):
    """The configured model id is flagged deprecated in the catalog."""

    def __init__(self, provider_id: str, model_id: str) -> None:
        super().__init__(
            f"Model '{model_id}' is deprecated for provider {provider_id}"
        )
        self.provider_id = provider_id
        self.model_id = model_id
