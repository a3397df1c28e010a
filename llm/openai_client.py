from __future__ import annotations

from typing import Final

from llm.decoders import (
    ResponseDocumentDecoder,
    ResponsesSSEDecoder,
    StreamDecoder,
    extract_response_text,
)
from llm.streaming_client import RequestSpec, StreamingClient
from shared.models import JSONValue

OPENAI_BASE_URL: Final[str] = "https://api.openai.com/v1"


class OpenAIStreamingClient(StreamingClient):
    """Клиент OpenAI Responses API (`/responses`)."""

    provider_name = "openai"
    api_key_env = "OPENAI_API_KEY"
    default_base_url = OPENAI_BASE_URL

    def _build_request(self, prompt: str, images_b64: list[str], api_key: str) -> RequestSpec:
        payload = self._build_payload(prompt, images_b64)
        if self.default_config.stream:
            payload["stream"] = True
        return f"{self.base_url}/responses", self._headers(api_key), payload

    def _build_complete_request(
        self, prompt: str, images_b64: list[str], api_key: str
    ) -> RequestSpec:
        return f"{self.base_url}/responses", self._headers(api_key), self._build_payload(
            prompt, images_b64
        )

    def _create_decoder(self) -> StreamDecoder:
        if self.default_config.stream:
            return ResponsesSSEDecoder()
        return ResponseDocumentDecoder()

    def _extract_text(self, document: dict[str, JSONValue]) -> str:
        return extract_response_text(document)

    def _headers(self, api_key: str) -> dict[str, str]:
        headers = self._base_headers()
        headers["Authorization"] = f"Bearer {api_key}"
        return headers

    def _build_payload(self, prompt: str, images_b64: list[str]) -> dict[str, JSONValue]:
        cfg = self.default_config
        content: list[JSONValue] = [{"type": "input_text", "text": prompt}]
        for image in images_b64:
            content.append(
                {
                    "type": "input_image",
                    "image_url": f"data:image/jpeg;base64,{image}",
                }
            )
        payload: dict[str, JSONValue] = {
            "model": cfg.model,
            "input": [{"role": "user", "content": content}],
        }
        if cfg.system_prompt:
            payload["instructions"] = cfg.system_prompt
        if cfg.temperature is not None:
            payload["temperature"] = cfg.temperature
        if cfg.max_tokens is not None:
            payload["max_output_tokens"] = cfg.max_tokens
        return payload
