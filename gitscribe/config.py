"""Configuration management for gitscribe."""

from __future__ import annotations

import json
import os
import shutil
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .exceptions import ConfigError
from .prompt import PromptCustomization
from .providers.descriptors import PROVIDERS, ProviderMode
from .providers.transport import DEFAULT_TIMEOUT as DEFAULT_REQUEST_TIMEOUT

CONFIG_DIR_NAME = ".gitscribe"
CONFIG_FILE_NAME = "config.json"
CONFIG_HOME_ENV = "GITSCRIBE_CONFIG_HOME"

DEFAULT_MAX_AUTO_RETRIES = 3
DEFAULT_SLOW_WARNING_THRESHOLD = 5.0

# Secondary env vars accepted for a provider's key, checked in order.
_SECRET_ENV_FALLBACKS = {
    "google-ai-studio": ["GOOGLE_API_KEY", "GOOGLE_GENERATIVE_AI_API_KEY"],
}

_FUZZY_ENV_HINTS = {
    "openrouter": ["OPENROUTER_KEY", "OR_API_KEY"],
    "openai": ["OPENAI_KEY", "OA_KEY"],
    "anthropic": ["ANTHROPIC_KEY", "CLAUDE_API_KEY"],
    "google-ai-studio": ["GEMINI_KEY", "GOOGLE_AI_KEY"],
    "cerebras": ["CEREBRAS_KEY"],
}

_AUTO_SELECT_ORDER = (
    "openrouter",
    "openai",
    "anthropic",
    "google-ai-studio",
    "cerebras",
    "claude-code",
    "gemini-cli",
    "codex",
)


@dataclass
class Config:
    """Runtime configuration for gitscribe."""

    provider: str
    model: str
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_auto_retries: int = DEFAULT_MAX_AUTO_RETRIES
    prompt_context: Optional[str] = None
    prompt_style: Optional[str] = None
    prompt_examples: List[str] = field(default_factory=list)
    recent_commit_count: int = 5
    git_repo_path: str = "."
    editor: Optional[str] = None
    slow_warning_threshold: float = DEFAULT_SLOW_WARNING_THRESHOLD

    def customization(self) -> PromptCustomization:
        return PromptCustomization(
            context=self.prompt_context,
            style=self.prompt_style,
            examples=tuple(self.prompt_examples),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialise configuration to a dict for persistence."""
        return asdict(self)


def _ensure_path(path_like: Optional[Path]) -> Path:
    if path_like is None:
        return Path.cwd().resolve(strict=False)
    return Path(path_like).expanduser().resolve(strict=False)


def config_dir(repo_root: Optional[Path] = None) -> Path:
    override = os.environ.get(CONFIG_HOME_ENV)
    if override:
        return Path(override).expanduser()
    return _ensure_path(repo_root) / CONFIG_DIR_NAME


def config_file_path(repo_root: Optional[Path] = None) -> Path:
    return config_dir(repo_root) / CONFIG_FILE_NAME


def save_config(config: Config, repo_root: Optional[Path] = None) -> Path:
    """Persist configuration JSON and return the file written."""
    cfg_path = config_file_path(repo_root)
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    data = config.to_dict()
    git_path = Path(data.get("git_repo_path") or ".").expanduser()
    if not git_path.is_absolute():
        git_path = _ensure_path(repo_root) / git_path
    data["git_repo_path"] = str(git_path.resolve(strict=False))
    cfg_path.write_text(json.dumps(data, indent=2))
    return cfg_path


def load_persisted_config(
    repo_root: Optional[Path] = None,
) -> Optional[Dict[str, Any]]:
    """Return the persisted settings, or None when nothing was saved."""
    cfg_path = config_file_path(repo_root)
    if not cfg_path.exists():
        return None
    try:
        data = json.loads(cfg_path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Could not read {cfg_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{cfg_path} must contain a JSON object")
    known = {f.name for f in fields(Config)}
    return {k: v for k, v in data.items() if k in known}


def env_secret_lookup(
    provider_id: str, env: Optional[Mapping[str, str]] = None
) -> Optional[str]:
    """Resolve a provider's API key from the environment.

    The descriptor's variable wins, then documented alternates, then the
    first variable matching a fuzzy hint. CLI providers have no key.
    """
    env_dict = os.environ if env is None else env
    descriptor = PROVIDERS.get(provider_id)
    if descriptor is None or descriptor.api_key_env is None:
        return None
    names = [descriptor.api_key_env] + _SECRET_ENV_FALLBACKS.get(provider_id, [])
    for name in names:
        value = env_dict.get(name)
        if value:
            return value
    for name in _fuzzy_matches(provider_id, env_dict):
        value = env_dict.get(name)
        if value:
            return value
    return None


def _fuzzy_matches(provider_id: str, env_dict: Mapping[str, str]) -> List[str]:
    hints = _FUZZY_ENV_HINTS.get(provider_id, [])
    matches: List[str] = []
    for env_key in env_dict:
        for hint in hints:
            if hint.lower() in env_key.lower():
                matches.append(env_key)
                break
    return matches


def detect_available_providers(
    env: Optional[Mapping[str, str]] = None,
) -> Dict[str, List[str]]:
    """Return mapping of provider -> evidence found.

    Evidence is the env var names holding a key for API providers and the
    resolved binary path for CLI providers.
    """
    env_dict: Mapping[str, str] = os.environ if env is None else env
    detected: Dict[str, List[str]] = {p: [] for p in PROVIDERS}
    for provider_id, descriptor in PROVIDERS.items():
        if descriptor.mode is ProviderMode.CLI:
            path = shutil.which(descriptor.binary or "")
            if path:
                detected[provider_id].append(path)
            continue
        names = [descriptor.api_key_env or ""]
        names += _SECRET_ENV_FALLBACKS.get(provider_id, [])
        for name in names:
            if env_dict.get(name):
                detected[provider_id].append(name)
        for name in _fuzzy_matches(provider_id, env_dict):
            if name not in detected[provider_id] and env_dict.get(name):
                detected[provider_id].append(name)
    return detected


def _auto_select_provider(
    detected: Optional[Dict[str, List[str]]] = None,
) -> str:
    if detected is None:
        detected = detect_available_providers()
    for provider in _AUTO_SELECT_ORDER:
        if detected.get(provider):
            return provider
    return "openai"


def _parse_float(raw: Any, name: str, allow_zero: bool = False) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if allow_zero and value < 0:
        raise ConfigError(f"{name} must not be negative")
    if not allow_zero and value <= 0:
        raise ConfigError(f"{name} must be greater than zero")
    return value


def _parse_int(raw: Any, name: str, minimum: int = 0) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigError(f"{name} must be at least {minimum}")
    return value


def _first(*values: Any) -> Any:
    return next((v for v in values if v not in (None, "")), None)


def load_config(
    *,
    repo_root: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Config:
    """Build configuration from overrides, environment and the config file."""
    overrides = dict(overrides or {})
    repo_root = _ensure_path(repo_root)
    persisted = load_persisted_config(repo_root) or {}

    provider = _first(
        overrides.get("provider"),
        os.environ.get("GITSCRIBE_PROVIDER"),
        persisted.get("provider"),
    ) or _auto_select_provider()
    if provider not in PROVIDERS:
        known = ", ".join(sorted(PROVIDERS))
        raise ConfigError(f"Unknown provider '{provider}'. Known providers: {known}")

    # A persisted model belongs to the persisted provider only.
    persisted_model = (
        persisted.get("model") if persisted.get("provider") == provider else None
    )
    model = _first(
        overrides.get("model"),
        os.environ.get("GITSCRIBE_MODEL"),
        persisted_model,
    ) or PROVIDERS[provider].default_model

    request_timeout = _parse_float(
        _first(
            overrides.get("request_timeout"),
            os.environ.get("GITSCRIBE_REQUEST_TIMEOUT"),
            persisted.get("request_timeout"),
            DEFAULT_REQUEST_TIMEOUT,
        ),
        "request_timeout",
    )
    max_auto_retries = _parse_int(
        _first(
            overrides.get("max_auto_retries"),
            os.environ.get("GITSCRIBE_MAX_RETRIES"),
            persisted.get("max_auto_retries"),
            DEFAULT_MAX_AUTO_RETRIES,
        ),
        "max_auto_retries",
    )
    recent_commit_count = _parse_int(
        _first(persisted.get("recent_commit_count"), 5), "recent_commit_count"
    )

    git_repo_raw = _first(
        overrides.get("repo_path"), persisted.get("git_repo_path"), str(repo_root)
    )
    git_repo_candidate = Path(git_repo_raw).expanduser()
    if not git_repo_candidate.is_absolute():
        git_repo_candidate = repo_root / git_repo_candidate
    git_repo_path = str(git_repo_candidate.resolve(strict=False))

    slow_warning_threshold = _parse_float(
        _first(
            os.environ.get("GITSCRIBE_SLOW_WARNING"),
            persisted.get("slow_warning_threshold"),
            DEFAULT_SLOW_WARNING_THRESHOLD,
        ),
        "slow_warning_threshold",
        allow_zero=True,
    )

    examples = persisted.get("prompt_examples") or []
    if not isinstance(examples, list):
        raise ConfigError("prompt_examples must be a list of strings")

    return Config(
        provider=provider,
        model=model,
        request_timeout=request_timeout,
        max_auto_retries=max_auto_retries,
        prompt_context=_first(
            overrides.get("prompt_context"), persisted.get("prompt_context")
        ),
        prompt_style=_first(
            overrides.get("prompt_style"), persisted.get("prompt_style")
        ),
        prompt_examples=[str(e) for e in examples],
        recent_commit_count=recent_commit_count,
        git_repo_path=git_repo_path,
        editor=_first(overrides.get("editor"), persisted.get("editor")),
        slow_warning_threshold=slow_warning_threshold,
    )


def describe_provider(provider: str) -> str:
    descriptor = PROVIDERS.get(provider)
    if descriptor is None:
        return provider
    return (
        f"{descriptor.id} ({descriptor.name}, {descriptor.mode.value}, "
        f"default model: {descriptor.default_model})"
    )
