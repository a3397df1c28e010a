from __future__ import annotations

from llm.gemini_client import GeminiStreamingClient
from llm.openai_client import OpenAIStreamingClient
from llm.streaming_client import StreamingClient
from llm.types import ModelConfig, ProviderName

DEFAULT_MODELS: dict[ProviderName, str] = {
    "gemini": "gemini-2.5-flash",
    "openai": "gpt-4o",
}


def provider_for_model(model: str) -> ProviderName:
    if "gpt" in model.lower():
        return "openai"
    return "gemini"


def create_streaming_client(config: ModelConfig, api_key: str | None = None) -> StreamingClient:
    if config.provider == "openai":
        return OpenAIStreamingClient(api_key=api_key or config.api_key, default_config=config)
    if config.provider == "gemini":
        return GeminiStreamingClient(api_key=api_key or config.api_key, default_config=config)
    raise ValueError(f"Неизвестный провайдер модели: {config.provider}")
