from __future__ import annotations

import logging

from shared.stream_models import (
    IncrementalIdentifierGenerator,
    MarkdownEntry,
    StreamContent,
    StreamItem,
)

logger = logging.getLogger("Hush.StreamBuilder")


class StreamContentBuilder:
    """Собирает StreamContent из накопленного текстового буфера.

    Сборка не инкрементальная: весь буфер становится одним markdown-элементом
    при каждом вызове. Новый builder создаётся на каждый запрос.
    """

    def __init__(self, buffer: str = "") -> None:
        self._buffer = buffer

    @property
    def buffer(self) -> str:
        return self._buffer

    def build(self, *, finished: bool = False) -> StreamContent:
        logger.debug("Processing %d characters of content", len(self._buffer))
        ids = IncrementalIdentifierGenerator.create()
        content = StreamContent()
        if self._buffer:
            content.append_item(StreamItem.create(ids, MarkdownEntry(content=self._buffer)))
        if finished:
            content.mark_finished()
        return content
