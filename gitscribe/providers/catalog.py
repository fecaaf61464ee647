"""Model catalog post-processing.

Raw model listings from provider APIs are noisy: embedding and audio models
sit next to chat models, and every base model shows up several times as
dated snapshots. :func:`resolve_models` turns such a listing into an ordered
list of selectable chat models.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

import httpx

from ..exceptions import ModelDeprecated, ModelNotFound
from .descriptors import ModelDefinition

logger = logging.getLogger(__name__)

UNRANKED_PRIORITY = 100
MODELS_DEV_URL = "https://models.dev/api.json"

_DATE_SUFFIX_RES = (
    re.compile(r"-\d{4}-\d{2}-\d{2}$"),
    re.compile(r"-\d{8}$"),
    re.compile(r"-\d{3}$"),
)
_LATEST_RE = re.compile(r"-latest$")
_TAG_RE = re.compile(r":(?:free|beta|alpha|extended|thinking)$")
_ANTHROPIC_TAG_RE = re.compile(r":(?:thinking|beta|alpha)$")
_GOOGLE_TAG_RE = re.compile(r":(?:free|beta|alpha)$")
_GOOGLE_PREVIEW_RE = re.compile(r"-preview(?:-[\d-]+)?$")
_MINOR_VERSION_RE = re.compile(r"\.(\d+)")


def _strip_date_suffix(model_id: str) -> str:
    for pattern in _DATE_SUFFIX_RES:
        model_id = pattern.sub("", model_id)
    return model_id


def base_openai_model_id(model_id: str) -> str:
    key = _strip_date_suffix(model_id)
    key = _LATEST_RE.sub("", key)
    return _TAG_RE.sub("", key)


def base_anthropic_model_id(model_id: str) -> str:
    """``claude-3.5-haiku`` and ``claude-3-5-haiku-20241022`` share a key."""
    key = _strip_date_suffix(model_id)
    key = _MINOR_VERSION_RE.sub(r"-\1", key)
    key = _LATEST_RE.sub("", key)
    return _ANTHROPIC_TAG_RE.sub("", key)


def base_google_model_id(model_id: str) -> str:
    """Preview snapshots collapse onto their base model."""
    key = _strip_date_suffix(model_id)
    key = _GOOGLE_PREVIEW_RE.sub("", key)
    key = _LATEST_RE.sub("", key)
    return _GOOGLE_TAG_RE.sub("", key)


_VENDOR_BASE_IDS = {
    "anthropic": base_anthropic_model_id,
    "openai": base_openai_model_id,
    "google": base_google_model_id,
}


def base_openrouter_model_id(model_id: str) -> str:
    vendor, sep, model = model_id.partition("/")
    base = _VENDOR_BASE_IDS.get(vendor)
    if not sep or base is None:
        return model_id
    return f"{vendor}/{base(model)}"


@dataclass(frozen=True)
class ProviderModelRules:
    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    priorities: Mapping[str, int] = field(default_factory=dict)
    base_id: Callable[[str], str] = base_openai_model_id

    def allows(self, model_id: str) -> bool:
        lowered = model_id.lower()
        if self.include and not any(re.search(p, lowered) for p in self.include):
            return False
        return not any(re.search(p, lowered) for p in self.exclude)

    def priority_for(self, model_id: str) -> int:
        """Rank of the longest priority key contained in ``model_id``."""
        lowered = model_id.lower()
        best: Optional[tuple[int, int]] = None
        for key, rank in self.priorities.items():
            if key in lowered and (best is None or len(key) > best[0]):
                best = (len(key), rank)
        return best[1] if best else UNRANKED_PRIORITY


_COMMON_EXCLUDES = (
    r"embed",
    r"audio",
    r"realtime",
    r"whisper",
    r"tts",
    r"dall-e",
    r"image",
    r"moderation",
)

RULES: dict[str, ProviderModelRules] = {
    "openai": ProviderModelRules(
        include=(r"^gpt-", r"^o\d", r"^chatgpt-", r"^codex"),
        exclude=_COMMON_EXCLUDES
        + (r"instruct", r"search-preview", r"transcribe"),
        priorities={
            "gpt-5-mini": 0,
            "gpt-4.1-mini": 1,
            "gpt-5": 2,
            "gpt-4o-mini": 3,
            "gpt-4.1": 4,
            "gpt-4o": 5,
            "gpt-5-nano": 6,
        },
    ),
    "anthropic": ProviderModelRules(
        include=(r"^claude-",),
        exclude=(r"embed", r"moderation"),
        priorities={
            "claude-3-5-haiku": 0,
            "claude-sonnet-4": 1,
            "claude-opus-4": 2,
            "claude-3-5-sonnet": 3,
            "claude-3-haiku": 4,
            "claude-3-sonnet": 5,
            "claude-3-opus": 6,
        },
        base_id=base_anthropic_model_id,
    ),
    "google-ai-studio": ProviderModelRules(
        include=(r"^gemini-",),
        exclude=_COMMON_EXCLUDES + (r"aqa", r"vision", r"native-audio"),
        priorities={
            "gemini-2.0-flash": 0,
            "gemini-1.5-pro": 1,
            "gemini-1.5-flash": 2,
            "gemini-2.0-flash-thinking": 3,
            "gemini-exp": 4,
            "gemini-1.5-flash-8b": 5,
        },
        base_id=base_google_model_id,
    ),
    "cerebras": ProviderModelRules(
        include=(r"^llama", r"^gpt", r"^qwen", r"^zai"),
        exclude=(r"embed",),
        priorities={
            "llama-3.3-70b": 0,
            "llama3.1-8b": 1,
            "gpt-oss-120b": 2,
            "qwen-3-32b": 3,
        },
    ),
    "openrouter": ProviderModelRules(
        include=(r"^(anthropic|openai|google)/",),
        exclude=_COMMON_EXCLUDES + (r":free$",),
        priorities={
            "anthropic/claude-3.5-haiku": 0,
            "openai/gpt-4.1-mini": 1,
            "google/gemini-2.0-flash": 2,
            "anthropic/claude-sonnet-4": 3,
            "openai/gpt-5-mini": 4,
        },
        base_id=base_openrouter_model_id,
    ),
}

_DEFAULT_RULES = ProviderModelRules()

# models.dev groups models under its own provider keys.
MODELS_DEV_PROVIDER_KEYS = {
    "openai": "openai",
    "anthropic": "anthropic",
    "google-ai-studio": "google",
    "cerebras": "cerebras",
    "openrouter": "openrouter",
}


def normalise_model_id(model_id: str) -> str:
    """Strip the ``models/`` resource prefix Google uses."""
    return model_id[len("models/"):] if model_id.startswith("models/") else model_id


def dedupe_key(model_id: str, provider_id: Optional[str] = None) -> str:
    """Base id with snapshot dates, ``-latest`` and variant tags removed.

    Providers with their own naming quirks (Google previews, Anthropic
    dotted versions) apply their own rules on top.
    """
    rules = RULES.get(provider_id or "", _DEFAULT_RULES)
    return rules.base_id(normalise_model_id(model_id).lower())


def _is_generation_model(provider_id: str, entry: Mapping[str, Any]) -> bool:
    if provider_id == "google-ai-studio":
        methods = entry.get("supportedGenerationMethods") or []
        return "generateContent" in methods
    if provider_id == "anthropic":
        return entry.get("type", "model") == "model"
    if provider_id == "openrouter":
        modalities = (entry.get("architecture") or {}).get("output_modalities")
        return modalities is None or "text" in modalities
    return entry.get("object", "model") == "model"


def _derive_display_name(model_id: str) -> str:
    words = []
    for word in re.split(r"[-_/]", dedupe_key(model_id)):
        if not word:
            continue
        if word in {"gpt", "oss"}:
            words.append(word.upper())
        else:
            words.append(word[:1].upper() + word[1:])
    return " ".join(words) or model_id


def _display_name(entry: Mapping[str, Any], model_id: str) -> str:
    for key in ("display_name", "displayName", "name"):
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            if normalise_model_id(value) == model_id:
                continue
            return value.strip()
    return _derive_display_name(model_id)


def resolve_models(
    provider_id: str,
    entries: Iterable[Mapping[str, Any]],
    statuses: Optional[Mapping[str, str]] = None,
) -> list[ModelDefinition]:
    """Filter, rank and de-duplicate a raw model listing.

    Steps run in a fixed order: generation-type filter, include/exclude
    patterns, stable ascending priority sort (unranked entries keep their
    catalog order after ranked ones), then de-duplication keeping the
    first entry seen for every base id.
    """
    rules = RULES.get(provider_id, _DEFAULT_RULES)
    statuses = statuses or {}

    candidates: list[ModelDefinition] = []
    for entry in entries:
        raw_id = entry.get("id") or entry.get("name")
        if not isinstance(raw_id, str) or not raw_id:
            continue
        if not _is_generation_model(provider_id, entry):
            continue
        model_id = normalise_model_id(raw_id)
        if not rules.allows(model_id):
            continue
        candidates.append(
            ModelDefinition(
                id=model_id,
                name=_display_name(entry, model_id),
                priority=rules.priority_for(model_id),
                deprecated=bool(entry.get("deprecated"))
                or statuses.get(model_id) == "deprecated",
            )
        )

    candidates.sort(key=lambda m: m.priority)

    seen: set[str] = set()
    resolved: list[ModelDefinition] = []
    for model in candidates:
        key = dedupe_key(model.id, provider_id)
        if key in seen:
            continue
        seen.add(key)
        resolved.append(model)
    return resolved


async def fetch_model_statuses(
    provider_id: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 10.0,
) -> dict[str, str]:
    """Return ``{model_id: status}`` from the models.dev catalog.

    Status data only decorates the listing, so any failure is logged and
    yields an empty mapping.
    """
    catalog_key = MODELS_DEV_PROVIDER_KEYS.get(provider_id)
    if catalog_key is None:
        return {}
    try:
        if client is not None:
            response = await client.get(MODELS_DEV_URL, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                response = await own_client.get(MODELS_DEV_URL)
        response.raise_for_status()
        payload = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Could not load model statuses from models.dev: %s", exc)
        return {}

    models = (payload.get(catalog_key) or {}).get("models") or {}
    statuses: dict[str, str] = {}
    for model_id, meta in models.items():
        status = meta.get("status") if isinstance(meta, dict) else None
        if status:
            statuses[model_id] = status
    return statuses


def mark_deprecated(
    models: Sequence[ModelDefinition], statuses: Mapping[str, str]
) -> list[ModelDefinition]:
    return [
        ModelDefinition(m.id, m.name, m.priority, True)
        if statuses.get(m.id) == "deprecated" and not m.deprecated
        else m
        for m in models
    ]


def check_configured_model(
    provider_id: str, models: Sequence[ModelDefinition], model_id: str
) -> ModelDefinition:
    """Return the catalog entry for ``model_id`` or raise.

    A configured id also matches a catalog entry sharing its base id, so a
    dated snapshot still validates against an undated alias.
    """
    wanted = normalise_model_id(model_id)
    match = next((m for m in models if m.id == wanted), None)
    if match is None:
        key = dedupe_key(wanted, provider_id)
        match = next(
            (m for m in models if dedupe_key(m.id, provider_id) == key), None
        )
    if match is None:
        raise ModelNotFound(provider_id, model_id)
    if match.deprecated:
        raise ModelDeprecated(provider_id, model_id)
    return match
