from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from llm.errors import StreamingError
from shared.models import JSONValue
from shared.stream_models import StreamContent

ProviderName = Literal["openai", "gemini"]

DEFAULT_REQUEST_TIMEOUT = 60
DEFAULT_RESOURCE_TIMEOUT = 300


@dataclass(frozen=True)
class ModelConfig:
    provider: ProviderName
    model: str
    api_key: str | None = None
    base_url: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    system_prompt: str | None = None
    extra_headers: dict[str, str] = field(default_factory=dict)
    stream: bool = False
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    resource_timeout: float = DEFAULT_RESOURCE_TIMEOUT


class StreamState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class StreamEvent:
    kind: Literal["update", "completed", "failed"]
    content: StreamContent
    delta: str = ""
    text: str = ""
    error: StreamingError | None = None

    @property
    def is_terminal(self) -> bool:
        return self.kind != "update"

    @classmethod
    def update(cls, content: StreamContent, *, delta: str, text: str) -> StreamEvent:
        return cls(kind="update", content=content, delta=delta, text=text)

    @classmethod
    def completed(cls, content: StreamContent, *, text: str) -> StreamEvent:
        return cls(kind="completed", content=content, text=text)

    @classmethod
    def failed(cls, error: StreamingError, *, text: str = "") -> StreamEvent:
        return cls(kind="failed", content=StreamContent.from_error(error), text=text, error=error)


@dataclass
class LLMResult:
    text: str
    raw: dict[str, JSONValue] | None = None
