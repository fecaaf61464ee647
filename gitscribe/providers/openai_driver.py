from __future__ import annotations

import logging
import re
from typing import Any

# Import the module, not symbols, so tests can stub AsyncOpenAI
import openai

from ..exceptions import ProviderError, ProviderTimeout
from .base import APIDriver, InvokeRequest

logger = logging.getLogger(__name__)


class OpenAIDriver(APIDriver):
    """Driver for OpenAI and OpenAI-compatible chat completions.

    The SDK's own retry loop is disabled; one ``invoke`` is one request.
    Reasoning models reject ``temperature`` and ``max_tokens`` so they get
    ``max_completion_tokens`` only.
    """

    REASONING_MODEL_RE = re.compile(r"^(o1|o3|o4|gpt-5)")
    MAX_TOKENS = 1024
    TEMPERATURE = 0.2

    def _build_client(self, api_key: str, timeout: float) -> Any:
        return openai.AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            timeout=timeout,
            max_retries=0,
            default_headers=self.headers(),
            http_client=self._http_client,
        )

    def is_reasoning_model(self, model: str) -> bool:
        return bool(self.REASONING_MODEL_RE.match(model))

    def completion_kwargs(self, request: InvokeRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": request.model,
            "messages": [
                {"role": "system", "content": request.system},
                {"role": "user", "content": request.prompt},
            ],
        }
        if self.is_reasoning_model(request.model):
            kwargs["max_completion_tokens"] = self.MAX_TOKENS
        else:
            kwargs["max_tokens"] = self.MAX_TOKENS
            kwargs["temperature"] = self.TEMPERATURE
        return kwargs

    async def _invoke(self, request: InvokeRequest) -> str:
        client = self._build_client(self.api_key(), request.timeout)
        kwargs = self.completion_kwargs(request)
        logger.debug(
            "%s chat completion model=%s reasoning=%s",
            self.provider_id,
            request.model,
            self.is_reasoning_model(request.model),
        )
        try:
            if self._http_client is None:
                async with client:
                    resp = await client.chat.completions.create(**kwargs)
            else:
                resp = await client.chat.completions.create(**kwargs)
        except openai.APITimeoutError as exc:
            raise ProviderTimeout(self.provider_id, request.timeout) from exc
        except openai.APIStatusError as exc:
            raise ProviderError(
                self.provider_id,
                exc.status_code,
                f"{self.descriptor.name} API error ({exc.status_code}): "
                f"{exc.message}",
            ) from exc
        except openai.APIConnectionError as exc:
            raise ProviderError(
                self.provider_id,
                None,
                f"{self.descriptor.name} network error: {exc}",
            ) from exc
        except openai.APIError as exc:
            raise ProviderError(
                self.provider_id,
                None,
                f"{self.descriptor.name} API error: {exc.message}",
            ) from exc
        return self._extract_content(resp)

    def _extract_content(self, resp: Any) -> str:
        try:
            choice0 = resp.choices[0]
        except (AttributeError, IndexError, TypeError):
            raise ProviderError(
                self.provider_id,
                None,
                f"Missing choices in {self.descriptor.name} response",
            ) from None

        # Content may be a string or a list of fragments
        raw_msg = getattr(choice0, "message", None)
        msg_content = getattr(raw_msg, "content", "") if raw_msg is not None else ""
        if isinstance(msg_content, str):
            return msg_content
        if isinstance(msg_content, list):
            fragments: list[str] = []
            for part in msg_content:
                if isinstance(part, dict):
                    txt = part.get("text") or part.get("content") or ""
                else:
                    txt = getattr(part, "text", "") or getattr(part, "content", "")
                if txt:
                    fragments.append(str(txt))
            return "".join(fragments)
        return ""

    async def _list_raw_models(self, api_key: str) -> list[dict[str, Any]]:
        payload = await self._request_json(
            "GET",
            f"{self.base_url}/models",
            headers=self.headers({"Authorization": f"Bearer {api_key}"}),
            timeout=30.0,
        )
        data = payload.get("data") if isinstance(payload, dict) else None
        return [m for m in data or [] if isinstance(m, dict)]
