from __future__ import annotations

from .openai_driver import OpenAIDriver


class CerebrasDriver(OpenAIDriver):
    """Cerebras inference through its OpenAI-compatible endpoint."""

    TEMPERATURE = 0.3

    def is_reasoning_model(self, model: str) -> bool:
        # gpt-oss on Cerebras still accepts temperature
        return False
