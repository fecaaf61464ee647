from __future__ import annotations

from typing import Optional

from .openai_driver import OpenAIDriver


class OpenRouterDriver(OpenAIDriver):
    """OpenRouter speaks the OpenAI protocol with attribution headers."""

    ATTRIBUTION_HEADERS = {"X-Title": "gitscribe"}

    def headers(self, extra: Optional[dict[str, str]] = None) -> dict[str, str]:
        merged = dict(self.ATTRIBUTION_HEADERS)
        if extra:
            merged.update(extra)
        return super().headers(merged)

    def is_reasoning_model(self, model: str) -> bool:
        # OpenRouter ids are vendor-prefixed, e.g. "openai/o3-mini"
        return super().is_reasoning_model(model.split("/", 1)[-1])
