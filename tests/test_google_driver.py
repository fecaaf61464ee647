import json

import httpx
import pytest

from gitscribe.exceptions import ProviderError
from gitscribe.providers.base import InvokeRequest
from gitscribe.providers.registry import create_driver


def _driver(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return create_driver(
        "google-ai-studio", secrets=lambda _pid: "g-key", http_client=client
    )


def _request():
    return InvokeRequest(
        provider_id="google-ai-studio",
        model="gemini-2.0-flash",
        system="SYS",
        prompt="PROMPT",
        timeout=5.0,
    )


@pytest.mark.asyncio
async def test_generate_content_request_shape():
    captured = {}

    def handler(request):
        captured["url"] = str(request.url)
        captured["key"] = request.headers["x-goog-api-key"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "candidates": [
                    {"content": {"parts": [{"text": "docs: "}, {"text": "update readme"}]}}
                ]
            },
        )

    result = await _driver(handler).invoke(_request())

    assert result.text == "docs: update readme"
    assert captured["url"].endswith("/v1beta/models/gemini-2.0-flash:generateContent")
    assert captured["key"] == "g-key"
    body = captured["body"]
    assert body["systemInstruction"] == {"parts": [{"text": "SYS"}]}
    assert body["contents"][0]["parts"][0]["text"] == "PROMPT"
    assert {s["threshold"] for s in body["safetySettings"]} == {"BLOCK_NONE"}


@pytest.mark.asyncio
async def test_blocked_prompt_is_a_provider_error():
    def handler(request):
        return httpx.Response(200, json={"promptFeedback": {"blockReason": "OTHER"}})

    with pytest.raises(ProviderError, match="OTHER"):
        await _driver(handler).invoke(_request())


@pytest.mark.asyncio
async def test_fetch_models_follows_pages():
    pages = {
        None: {
            "models": [
                {
                    "name": "models/gemini-1.5-flash-001",
                    "displayName": "Gemini 1.5 Flash",
                    "supportedGenerationMethods": ["generateContent"],
                }
            ],
            "nextPageToken": "p2",
        },
        "p2": {
            "models": [
                {
                    "name": "models/gemini-1.5-flash-002",
                    "supportedGenerationMethods": ["generateContent"],
                },
                {
                    "name": "models/text-embedding-004",
                    "supportedGenerationMethods": ["embedContent"],
                },
                {
                    "name": "models/gemini-2.0-flash",
                    "supportedGenerationMethods": ["generateContent", "countTokens"],
                },
            ]
        },
    }

    def handler(request):
        return httpx.Response(200, json=pages[request.url.params.get("pageToken")])

    models = await _driver(handler).fetch_models()

    assert [m.id for m in models] == ["gemini-2.0-flash", "gemini-1.5-flash-001"]
