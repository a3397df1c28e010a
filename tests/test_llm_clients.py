from __future__ import annotations

import json
from typing import Any

import pytest
import requests

from llm.client_factory import create_streaming_client, provider_for_model
from llm.errors import MissingAPIKeyError, StreamTransportError
from llm.gemini_client import GeminiStreamingClient
from llm.openai_client import OpenAIStreamingClient
from llm.types import ModelConfig


def _mock_response(payload: dict[str, Any], status_code: int = 200):
    class Response:
        def __init__(self) -> None:
            self.status_code = status_code

        def json(self) -> dict[str, Any]:
            return payload

        def raise_for_status(self) -> None:
            if self.status_code >= 400:
                raise requests.HTTPError(f"{self.status_code} error", response=self)

    return Response()


def test_openai_complete(monkeypatch) -> None:
    calls: dict[str, Any] = {}

    def fake_post(url, data, headers, timeout):
        calls["url"] = url
        calls["json"] = json.loads(data)
        calls["headers"] = headers
        calls["timeout"] = timeout
        return _mock_response({"output": [{"content": [{"type": "output_text", "text": "hi"}]}]})

    monkeypatch.setattr("llm.streaming_client.requests.post", fake_post)
    config = ModelConfig(
        provider="openai",
        model="gpt-4o",
        temperature=0.1,
        system_prompt="Be brief.",
        stream=True,
    )
    client = OpenAIStreamingClient(api_key="test-key", default_config=config)

    result = client.complete("ping")
    assert result.text == "hi"
    assert calls["url"] == "https://api.openai.com/v1/responses"
    assert calls["headers"]["Authorization"] == "Bearer test-key"
    assert calls["json"]["model"] == "gpt-4o"
    assert calls["json"]["instructions"] == "Be brief."
    assert calls["json"]["temperature"] == 0.1
    assert "stream" not in calls["json"]
    assert calls["timeout"] == config.request_timeout


def test_gemini_complete(monkeypatch) -> None:
    calls: dict[str, Any] = {}

    def fake_post(url, data, headers, timeout):
        calls["url"] = url
        calls["json"] = json.loads(data)
        calls["headers"] = headers
        return _mock_response(
            {"candidates": [{"content": {"parts": [{"text": "po"}, {"text": "ng"}]}}]}
        )

    monkeypatch.setattr("llm.streaming_client.requests.post", fake_post)
    config = ModelConfig(provider="gemini", model="models/gemini-2.5-flash", max_tokens=64)
    client = GeminiStreamingClient(api_key="g-key", default_config=config)

    result = client.complete("hello")
    assert result.text == "pong"
    assert calls["url"] == (
        "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.5-flash:generateContent"
    )
    assert calls["headers"]["x-goog-api-key"] == "g-key"
    assert calls["json"]["generationConfig"] == {"maxOutputTokens": 64}


def test_complete_http_error_carries_status(monkeypatch) -> None:
    def fake_post(url, data, headers, timeout):
        return _mock_response({"error": {"message": "bad"}}, status_code=429)

    monkeypatch.setattr("llm.streaming_client.requests.post", fake_post)
    client = GeminiStreamingClient(
        api_key="g-key", default_config=ModelConfig(provider="gemini", model="gemini-2.5-flash")
    )
    with pytest.raises(StreamTransportError) as exc_info:
        client.complete("hello")
    assert exc_info.value.status == 429


def test_complete_provider_error_in_body(monkeypatch) -> None:
    def fake_post(url, data, headers, timeout):
        return _mock_response({"error": {"message": "model overloaded"}})

    monkeypatch.setattr("llm.streaming_client.requests.post", fake_post)
    client = OpenAIStreamingClient(
        api_key="o-key", default_config=ModelConfig(provider="openai", model="gpt-4o")
    )
    with pytest.raises(StreamTransportError, match="model overloaded"):
        client.complete("hello")


def test_complete_without_key_raises() -> None:
    config = ModelConfig(provider="openai", model="gpt-4o")
    client = OpenAIStreamingClient(api_key=None, default_config=config)
    with pytest.raises(MissingAPIKeyError):
        client.complete("ping")


def test_images_are_attached_as_jpeg_data_urls(monkeypatch) -> None:
    from PIL import Image

    calls: dict[str, Any] = {}

    def fake_post(url, data, headers, timeout):
        calls["json"] = json.loads(data)
        return _mock_response({"output": []})

    monkeypatch.setattr("llm.streaming_client.requests.post", fake_post)
    client = OpenAIStreamingClient(
        api_key="o-key", default_config=ModelConfig(provider="openai", model="gpt-4o")
    )
    client.complete("what is this", [Image.new("RGB", (4, 4)), b"broken"])
    content = calls["json"]["input"][0]["content"]
    assert [part["type"] for part in content] == ["input_text", "input_image"]
    assert content[1]["image_url"].startswith("data:image/jpeg;base64,")


def test_provider_for_model() -> None:
    assert provider_for_model("gpt-4o") == "openai"
    assert provider_for_model("GPT-4.1-mini") == "openai"
    assert provider_for_model("gemini-2.5-pro") == "gemini"


def test_factory_builds_clients() -> None:
    gemini = create_streaming_client(ModelConfig(provider="gemini", model="gemini-2.5-flash"))
    openai = create_streaming_client(
        ModelConfig(provider="openai", model="gpt-4o"), api_key="explicit"
    )
    assert isinstance(gemini, GeminiStreamingClient)
    assert isinstance(openai, OpenAIStreamingClient)
    assert openai.api_key == "explicit"
    with pytest.raises(ValueError):
        create_streaming_client(ModelConfig(provider="xai", model="grok"))  # type: ignore[arg-type]
