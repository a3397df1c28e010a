from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from llm.errors import StreamTransportError
from shared.models import JSONValue
from shared.sanitize import safe_json_loads

logger = logging.getLogger("Hush.Decoders")

SSE_DONE_MARKER = "[DONE]"


@dataclass(frozen=True)
class DecodeResult:
    delta: str = ""
    completed: bool = False


class StreamDecoder(Protocol):
    def feed(self, chunk: bytes) -> DecodeResult: ...

    def finish(self) -> DecodeResult: ...


def extract_response_text(document: dict[str, JSONValue]) -> str:
    """Текст из документа OpenAI Responses: output[*].content[*].text."""
    output_raw = document.get("output")
    if not isinstance(output_raw, list):
        return ""
    for entry in output_raw:
        if not isinstance(entry, dict):
            continue
        content_raw = entry.get("content")
        if not isinstance(content_raw, list):
            continue
        for part in content_raw:
            if not isinstance(part, dict):
                continue
            text_raw = part.get("text")
            if isinstance(text_raw, str):
                return text_raw
    return ""


def extract_gemini_text(document: dict[str, JSONValue]) -> str:
    candidates_raw = document.get("candidates")
    if not isinstance(candidates_raw, list) or not candidates_raw:
        return ""
    first = candidates_raw[0]
    if not isinstance(first, dict):
        return ""
    content_raw = first.get("content")
    if not isinstance(content_raw, dict):
        return ""
    parts_raw = content_raw.get("parts")
    if not isinstance(parts_raw, list):
        return ""
    texts: list[str] = []
    for part in parts_raw:
        if not isinstance(part, dict):
            continue
        text_raw = part.get("text")
        if isinstance(text_raw, str):
            texts.append(text_raw)
    return "".join(texts)


def provider_error_message(error_raw: JSONValue) -> str:
    if isinstance(error_raw, dict):
        message = error_raw.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    if isinstance(error_raw, str) and error_raw.strip():
        return error_raw.strip()
    return "Провайдер вернул ошибку без описания."


class ResponseDocumentDecoder:
    """Растущий JSON-документ OpenAI Responses.

    Весь накопленный буфер каждый раз разбирается как один документ;
    неполный JSON означает «ещё не готово», а не ошибку.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._emitted = ""

    def feed(self, chunk: bytes) -> DecodeResult:
        self._buffer.extend(chunk)
        try:
            raw = self._buffer.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("Incomplete UTF-8 sequence in %d bytes, waiting", len(self._buffer))
            return DecodeResult()
        document = safe_json_loads(raw)
        if not isinstance(document, dict):
            logger.debug("Response document not ready (%d bytes)", len(self._buffer))
            return DecodeResult()

        error_raw = document.get("error")
        if error_raw:
            raise StreamTransportError(provider_error_message(error_raw))

        text = extract_response_text(document)
        if text.startswith(self._emitted):
            delta = text[len(self._emitted) :]
            self._emitted = text
        else:
            delta = text
            self._emitted += text
        return DecodeResult(delta=delta, completed=document.get("status") == "completed")

    def finish(self) -> DecodeResult:
        return DecodeResult()


class SSEDecoder(ABC):
    """Разбор server-sent events с курсором по завершённым строкам."""

    def __init__(self) -> None:
        self._pending = b""
        self._data_lines: list[str] = []

    def feed(self, chunk: bytes) -> DecodeResult:
        *lines, self._pending = (self._pending + chunk).split(b"\n")
        return self._consume(lines)

    def finish(self) -> DecodeResult:
        lines = [self._pending] if self._pending else []
        self._pending = b""
        lines.append(b"")
        return self._consume(lines)

    def _consume(self, lines: Iterable[bytes]) -> DecodeResult:
        deltas: list[str] = []
        completed = False
        for raw_line in lines:
            line = raw_line.decode("utf-8", errors="replace").rstrip("\r")
            if not line:
                result = self._dispatch()
                deltas.append(result.delta)
                completed = completed or result.completed
                continue
            if line.startswith(":"):
                continue
            if line.startswith("data:"):
                value = line[len("data:") :]
                self._data_lines.append(value[1:] if value.startswith(" ") else value)
        return DecodeResult(delta="".join(deltas), completed=completed)

    def _dispatch(self) -> DecodeResult:
        if not self._data_lines:
            return DecodeResult()
        data = "\n".join(self._data_lines).strip()
        self._data_lines = []
        if not data:
            return DecodeResult()
        if data == SSE_DONE_MARKER:
            return DecodeResult(completed=True)
        payload = safe_json_loads(data)
        if not isinstance(payload, dict):
            logger.warning("Skipping malformed SSE frame: %s", data[:120])
            return DecodeResult()
        return self._handle_payload(payload)

    @abstractmethod
    def _handle_payload(self, payload: dict[str, JSONValue]) -> DecodeResult:
        raise NotImplementedError


class ResponsesSSEDecoder(SSEDecoder):
    """OpenAI Responses в режиме stream=true."""

    def _handle_payload(self, payload: dict[str, JSONValue]) -> DecodeResult:
        event_type = payload.get("type")
        if event_type == "response.output_text.delta":
            delta_raw = payload.get("delta")
            return DecodeResult(delta=delta_raw if isinstance(delta_raw, str) else "")
        if event_type == "response.completed":
            return DecodeResult(completed=True)
        if event_type == "response.failed":
            response_raw = payload.get("response")
            error_raw = response_raw.get("error") if isinstance(response_raw, dict) else None
            raise StreamTransportError(provider_error_message(error_raw))
        if event_type == "error":
            raise StreamTransportError(provider_error_message(payload))
        return DecodeResult()


class GeminiSSEDecoder(SSEDecoder):
    """Gemini streamGenerateContent?alt=sse."""

    def _handle_payload(self, payload: dict[str, JSONValue]) -> DecodeResult:
        error_raw = payload.get("error")
        if error_raw:
            raise StreamTransportError(provider_error_message(error_raw))
        completed = False
        candidates_raw = payload.get("candidates")
        if isinstance(candidates_raw, list) and candidates_raw:
            first = candidates_raw[0]
            if isinstance(first, dict) and first.get("finishReason"):
                completed = True
        return DecodeResult(delta=extract_gemini_text(payload), completed=completed)
