from __future__ import annotations

from typing import Any

from ..exceptions import ProviderError
from .base import APIDriver, InvokeRequest

_SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


class GoogleAIStudioDriver(APIDriver):
    """Gemini models through the Generative Language API.

    Diffs routinely contain text that trips the default safety filters,
    so every category is set to ``BLOCK_NONE``.
    """

    def _auth_headers(self, api_key: str) -> dict[str, str]:
        return self.headers({"x-goog-api-key": api_key})

    async def _invoke(self, request: InvokeRequest) -> str:
        payload = {
            "systemInstruction": {"parts": [{"text": request.system}]},
            "contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
            "generationConfig": {"temperature": 0.2, "maxOutputTokens": 1024},
            "safetySettings": [
                {"category": c, "threshold": "BLOCK_NONE"}
                for c in _SAFETY_CATEGORIES
            ],
        }
        data = await self._request_json(
            "POST",
            f"{self.base_url}/models/{request.model}:generateContent",
            headers=self._auth_headers(self.api_key()),
            timeout=request.timeout,
            payload=payload,
        )
        candidates = data.get("candidates") if isinstance(data, dict) else None
        if not candidates:
            feedback = (data or {}).get("promptFeedback", {})
            reason = feedback.get("blockReason", "no candidates returned")
            raise ProviderError(
                self.provider_id, None, f"Google AI Studio returned no text: {reason}"
            )
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts if isinstance(p, dict))

    async def _list_raw_models(self, api_key: str) -> list[dict[str, Any]]:
        models: list[dict[str, Any]] = []
        params: dict[str, str] = {"pageSize": "1000"}
        while True:
            data = await self._request_json(
                "GET",
                f"{self.base_url}/models",
                headers=self._auth_headers(api_key),
                timeout=30.0,
                params=params,
            )
            models.extend(m for m in data.get("models", []) if isinstance(m, dict))
            token = data.get("nextPageToken")
            if not token:
                return models
            params = {"pageSize": "1000", "pageToken": token}
