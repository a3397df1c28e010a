from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Protocol


class IdentifierGenerator(Protocol):
    def __call__(self) -> str: ...

    def nested(self) -> IdentifierGenerator: ...


class IncrementalIdentifierGenerator:
    """Иерархические инкрементальные идентификаторы для элементов контента.

    Корневой генератор выдаёт "1", "2", ...; вложенный генератор, созданный
    после "2", выдаёт "2-1.1", "2-1.2", ... Один экземпляр на один проход
    сборки, потокобезопасность не требуется.
    """

    def __init__(self, prefix: str = "") -> None:
        self._prefix = prefix
        self._id = 0
        self._nested_id = 0

    @classmethod
    def create(cls) -> IncrementalIdentifierGenerator:
        return cls(prefix="")

    @property
    def prefix(self) -> str:
        return self._prefix

    def __call__(self) -> str:
        self._nested_id = 0
        self._id += 1
        return f"{self._prefix}{self._id}"

    def nested(self) -> IncrementalIdentifierGenerator:
        self._nested_id += 1
        return IncrementalIdentifierGenerator(prefix=f"{self._prefix}{self._id}-{self._nested_id}.")


@dataclass(frozen=True)
class MarkdownEntry:
    content: str
    collapsed: str | None = None

    @property
    def collapsible(self) -> bool:
        return self.collapsed is not None


# Закрытый набор видов элементов; рендерер обязан разбирать их все.
StreamItemValue = MarkdownEntry


@dataclass(frozen=True)
class StreamItem:
    id: str
    value: StreamItemValue

    @classmethod
    def create(cls, ids: IdentifierGenerator, value: StreamItemValue) -> StreamItem:
        return cls(id=ids(), value=value)


@dataclass(frozen=True)
class IdentifiableError:
    error: BaseException
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__


@dataclass
class StreamContent:
    items: list[StreamItem] = field(default_factory=list)
    finished: bool = False
    errors: list[IdentifiableError] = field(default_factory=list)

    def append_item(self, item: StreamItem) -> None:
        if self.finished:
            raise RuntimeError("Нельзя добавлять элементы в завершённый контент.")
        self.items.append(item)

    def add_error(self, error: BaseException) -> IdentifiableError:
        wrapped = IdentifiableError(error)
        self.errors.append(wrapped)
        return wrapped

    def mark_finished(self) -> None:
        self.finished = True

    @property
    def text(self) -> str:
        for item in self.items:
            if isinstance(item.value, MarkdownEntry):
                return item.value.content
        return ""

    @classmethod
    def from_markdown(cls, text: str, *, finished: bool = True) -> StreamContent:
        content = cls()
        ids = IncrementalIdentifierGenerator.create()
        content.append_item(StreamItem.create(ids, MarkdownEntry(content=text)))
        if finished:
            content.mark_finished()
        return content

    @classmethod
    def from_error(cls, error: BaseException) -> StreamContent:
        content = cls()
        content.add_error(error)
        content.mark_finished()
        return content


def render_plain_text(content: StreamContent) -> str:
    """Текстовое представление контента (для CLI и логов)."""
    parts: list[str] = []
    for item in content.items:
        value = item.value
        if isinstance(value, MarkdownEntry):
            parts.append(value.content)
        else:
            raise TypeError(f"Неизвестный вид элемента: {type(value).__name__}")
    for error in content.errors:
        parts.append(f"Error: {error.message}")
    return "\n\n".join(parts)
