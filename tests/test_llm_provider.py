"""Unit tests for notelog.services.llm_provider (Gemini REST mapping, registry)."""
from __future__ import annotations

import io
import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from notelog.exceptions import (
    ProviderError,
    RateLimitedError,
    ResponseTruncatedError,
    TransientProviderError,
)
from notelog.services.llm_provider import (
    GeminiProvider,
    get_llm_provider,
    list_providers,
    register_provider,
)


def _response(payload: dict) -> MagicMock:
    resp = MagicMock()
    resp.read.return_value = json.dumps(payload).encode("utf-8")
    resp.__enter__.return_value = resp
    return resp


def _http_error(code: int, body: dict | str = "") -> urllib.error.HTTPError:
    raw = body if isinstance(body, str) else json.dumps(body)
    return urllib.error.HTTPError(
        "https://example.test", code, "Too Many Requests" if code == 429 else "Error", {}, io.BytesIO(raw.encode()),
    )


def _ok(text: str, finish: str = "STOP") -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": finish}]}


@pytest.mark.asyncio
async def test_generate_returns_text_and_sends_json_request():
    provider = GeminiProvider(api_key="k", model="gemini-test", base_url="https://api.test/v1beta/")
    with patch("notelog.services.llm_provider.urllib.request.urlopen", return_value=_response(_ok("[]"))) as mock_open:
        text = await provider.generate("note", system_instruction="sys")

    assert text == "[]"
    req = mock_open.call_args[0][0]
    assert req.full_url == "https://api.test/v1beta/models/gemini-test:generateContent?key=k"
    body = json.loads(req.data.decode("utf-8"))
    assert body["contents"][0]["parts"][0]["text"] == "note"
    assert body["systemInstruction"]["parts"][0]["text"] == "sys"
    assert body["generationConfig"]["responseMimeType"] == "application/json"


@pytest.mark.asyncio
async def test_max_tokens_is_truncation():
    provider = GeminiProvider(api_key="k")
    with patch(
        "notelog.services.llm_provider.urllib.request.urlopen",
        return_value=_response(_ok('[{"target_text": "犬"', finish="MAX_TOKENS")),
    ):
        with pytest.raises(ResponseTruncatedError):
            await provider.generate("note")


@pytest.mark.asyncio
async def test_missing_parts_is_provider_error():
    provider = GeminiProvider(api_key="k")
    with patch("notelog.services.llm_provider.urllib.request.urlopen", return_value=_response({"candidates": []})):
        with pytest.raises(ProviderError) as exc_info:
            await provider.generate("note")
    assert not isinstance(exc_info.value, (RateLimitedError, TransientProviderError))


@pytest.mark.asyncio
async def test_http_429_is_rate_limited():
    provider = GeminiProvider(api_key="k")
    err = _http_error(429, {"error": {"code": 429, "status": "RESOURCE_EXHAUSTED", "message": "quota"}})
    with patch("notelog.services.llm_provider.urllib.request.urlopen", side_effect=err):
        with pytest.raises(RateLimitedError) as exc_info:
            await provider.generate("note")
    assert exc_info.value.details["error"]["status"] == "RESOURCE_EXHAUSTED"


@pytest.mark.asyncio
async def test_resource_exhausted_body_is_rate_limited_regardless_of_status():
    provider = GeminiProvider(api_key="k")
    err = _http_error(400, {"error": {"code": 429, "status": "RESOURCE_EXHAUSTED"}})
    with patch("notelog.services.llm_provider.urllib.request.urlopen", side_effect=err):
        with pytest.raises(RateLimitedError):
            await provider.generate("note")


@pytest.mark.asyncio
async def test_other_http_error_is_plain_provider_error():
    provider = GeminiProvider(api_key="k")
    with patch("notelog.services.llm_provider.urllib.request.urlopen", side_effect=_http_error(500, "oops")):
        with pytest.raises(ProviderError) as exc_info:
            await provider.generate("note")
    assert type(exc_info.value) is ProviderError
    assert str(exc_info.value) == "API Error 500: Error"


@pytest.mark.asyncio
async def test_connection_failure_is_transient():
    provider = GeminiProvider(api_key="k")
    with patch(
        "notelog.services.llm_provider.urllib.request.urlopen",
        side_effect=urllib.error.URLError(ConnectionResetError("reset by peer")),
    ):
        with pytest.raises(TransientProviderError):
            await provider.generate("note")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def test_builtin_providers_registered():
    assert {"gemini", "openai"} <= set(list_providers())


def test_get_llm_provider_builds_gemini_from_config():
    provider = get_llm_provider("k", {"provider": "gemini", "model": "gemini-x", "options": {"temperature": 0.3}})
    assert isinstance(provider, GeminiProvider)
    assert provider.api_key == "k"
    assert provider.model == "gemini-x"
    assert provider.temperature == 0.3


def test_get_llm_provider_unknown_raises():
    with pytest.raises(ValueError, match="Unknown LLM provider"):
        get_llm_provider("k", {"provider": "nope"})


def test_register_provider_rejects_empty_name():
    with pytest.raises(ValueError):
        register_provider("  ", lambda cfg: None)
