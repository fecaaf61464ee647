import json

import httpx
import pytest

from gitscribe.exceptions import ProviderError, ProviderTimeout, ProviderUnavailable
from gitscribe.providers.base import InvokeRequest
from gitscribe.providers.registry import create_driver


def _request(timeout=5.0):
    return InvokeRequest(
        provider_id="anthropic",
        model="claude-3-5-haiku-latest",
        system="SYS",
        prompt="# STAGED DIFF\n+x",
        timeout=timeout,
    )


def _driver(handler, key="sk-ant"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return create_driver(
        "anthropic",
        secrets=lambda provider_id: key,
        http_client=client,
        headers={"X-Request-Source": "tests"},
    )


@pytest.mark.asyncio
async def test_invoke_posts_messages_request():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "content": [
                    {"type": "text", "text": "feat(test): "},
                    {"type": "tool_use", "id": "ignored"},
                    {"type": "text", "text": "stubbed anthropic message"},
                ]
            },
        )

    result = await _driver(handler).invoke(_request())

    assert result.text == "feat(test): stubbed anthropic message"
    assert captured["url"] == "https://api.anthropic.com/v1/messages"
    assert captured["headers"]["x-api-key"] == "sk-ant"
    assert captured["headers"]["anthropic-version"] == "2023-06-01"
    assert captured["headers"]["user-agent"] == "gitscribe"
    assert captured["headers"]["x-request-source"] == "tests"
    body = captured["body"]
    assert body["system"] == "SYS"
    assert body["messages"] == [{"role": "user", "content": "# STAGED DIFF\n+x"}]
    assert body["model"] == "claude-3-5-haiku-latest"


@pytest.mark.asyncio
async def test_http_error_is_passed_through():
    def handler(request):
        return httpx.Response(529, text='{"error": "overloaded"}')

    with pytest.raises(ProviderError) as ei:
        await _driver(handler).invoke(_request())
    assert ei.value.status == 529
    assert "overloaded" in ei.value.message


@pytest.mark.asyncio
async def test_transport_timeout_maps_to_provider_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ProviderTimeout):
        await _driver(handler).invoke(_request())


@pytest.mark.asyncio
async def test_connection_failure_has_no_status():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ProviderError) as ei:
        await _driver(handler).invoke(_request())
    assert ei.value.status is None


@pytest.mark.asyncio
async def test_missing_key_is_unavailable():
    def handler(request):  # pragma: no cover - never reached
        raise AssertionError("no request expected")

    driver = _driver(handler, key=None)
    assert driver.check_available() is False
    with pytest.raises(ProviderUnavailable):
        await driver.invoke(_request())


@pytest.mark.asyncio
async def test_key_comes_from_environment_by_default(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "from-env")
    assert create_driver("anthropic").check_available() is True


@pytest.mark.asyncio
async def test_fetch_models_resolves_catalog():
    def handler(request):
        assert request.url.path == "/v1/models"
        assert request.headers["x-api-key"] == "explicit"
        return httpx.Response(
            200,
            json={
                "data": [
                    {"type": "model", "id": "claude-3-opus-20240229", "display_name": "Claude 3 Opus"},
                    {"type": "model", "id": "claude-3-5-haiku-20241022", "display_name": "Claude 3.5 Haiku"},
                    {"type": "other", "id": "claude-embed-1"},
                ]
            },
        )

    models = await _driver(handler, key=None).fetch_models("explicit")
    assert [m.id for m in models] == [
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
    ]
