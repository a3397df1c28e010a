from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

JSONPrimitive = str | bytes | int | float | bool | None
JSONValue = JSONPrimitive | Sequence["JSONValue"] | Mapping[str, "JSONValue"]


class MessageSender(str, Enum):
    USER = "user"
    AI = "ai"


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Текущее время в UTC с точностью до секунды (как в файлах сессий)."""
    return datetime.now(UTC).replace(microsecond=0)


@dataclass(frozen=True)
class ChatMessage:
    content: str
    sender: MessageSender
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utc_now)
    metadata: dict[str, str] | None = None


@dataclass
class ChatSession:
    """Один непрерывный диалог; сообщения только дописываются."""

    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    last_updated_at: datetime = field(default_factory=utc_now)
    messages: list[ChatMessage] = field(default_factory=list)

    def append(self, message: ChatMessage) -> None:
        self.messages.append(message)
        self.last_updated_at = utc_now()

    @property
    def is_empty(self) -> bool:
        return not self.messages
