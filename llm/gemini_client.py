from __future__ import annotations

from typing import Final

from llm.decoders import GeminiSSEDecoder, StreamDecoder, extract_gemini_text
from llm.streaming_client import RequestSpec, StreamingClient
from shared.models import JSONValue

GEMINI_BASE_URL: Final[str] = "https://generativelanguage.googleapis.com/v1beta"


class GeminiStreamingClient(StreamingClient):
    """Клиент Gemini: streamGenerateContent в формате SSE."""

    provider_name = "gemini"
    api_key_env = "GEMINI_API_KEY"
    default_base_url = GEMINI_BASE_URL

    def _build_request(self, prompt: str, images_b64: list[str], api_key: str) -> RequestSpec:
        url = f"{self._model_url()}:streamGenerateContent?alt=sse"
        return url, self._headers(api_key), self._build_payload(prompt, images_b64)

    def _build_complete_request(
        self, prompt: str, images_b64: list[str], api_key: str
    ) -> RequestSpec:
        url = f"{self._model_url()}:generateContent"
        return url, self._headers(api_key), self._build_payload(prompt, images_b64)

    def _create_decoder(self) -> StreamDecoder:
        return GeminiSSEDecoder()

    def _extract_text(self, document: dict[str, JSONValue]) -> str:
        return extract_gemini_text(document)

    def _model_url(self) -> str:
        model = self.default_config.model.removeprefix("models/")
        return f"{self.base_url}/models/{model}"

    def _headers(self, api_key: str) -> dict[str, str]:
        headers = self._base_headers()
        headers["x-goog-api-key"] = api_key
        return headers

    def _build_payload(self, prompt: str, images_b64: list[str]) -> dict[str, JSONValue]:
        cfg = self.default_config
        parts: list[JSONValue] = [{"text": prompt}]
        for image in images_b64:
            parts.append({"inline_data": {"mime_type": "image/jpeg", "data": image}})
        payload: dict[str, JSONValue] = {"contents": [{"role": "user", "parts": parts}]}
        if cfg.system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": cfg.system_prompt}]}
        generation_config: dict[str, JSONValue] = {}
        if cfg.temperature is not None:
            generation_config["temperature"] = cfg.temperature
        if cfg.max_tokens is not None:
            generation_config["maxOutputTokens"] = cfg.max_tokens
        if generation_config:
            payload["generationConfig"] = generation_config
        return payload
