from __future__ import annotations

from typing import Any

from ..exceptions import ProviderError
from .base import APIDriver, InvokeRequest

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicDriver(APIDriver):
    """Driver handling Anthropic API calls (messages endpoint)."""

    MAX_TOKENS = 1024

    def _auth_headers(self, api_key: str) -> dict[str, str]:
        return self.headers(
            {"x-api-key": api_key, "anthropic-version": ANTHROPIC_VERSION}
        )

    async def _invoke(self, request: InvokeRequest) -> str:
        payload = {
            "model": request.model,
            "max_tokens": self.MAX_TOKENS,
            "temperature": 0,
            "system": request.system,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        data = await self._request_json(
            "POST",
            f"{self.base_url}/v1/messages",
            headers=self._auth_headers(self.api_key()),
            timeout=request.timeout,
            payload=payload,
        )
        content = data.get("content") if isinstance(data, dict) else None
        if not isinstance(content, list):
            raise ProviderError(
                self.provider_id, None, "Anthropic response has no content"
            )
        parts = [
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        return "".join(parts)

    async def _list_raw_models(self, api_key: str) -> list[dict[str, Any]]:
        data = await self._request_json(
            "GET",
            f"{self.base_url}/v1/models",
            headers=self._auth_headers(api_key),
            timeout=30.0,
            params={"limit": "1000"},
        )
        items = data.get("data") if isinstance(data, dict) else None
        return [m for m in items or [] if isinstance(m, dict)]
