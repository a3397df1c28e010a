from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import aclosing
from typing import Final

import aiohttp
import requests

from core.stream_builder import StreamContentBuilder
from llm.decoders import StreamDecoder, provider_error_message
from llm.errors import (
    MissingAPIKeyError,
    RequestEncodingError,
    StreamingError,
    StreamTransportError,
)
from llm.images import ImageSource, encode_images
from llm.types import LLMResult, ModelConfig, StreamEvent, StreamState
from shared.models import JSONValue
from shared.sanitize import safe_json_loads, sanitize_record
from shared.stream_models import StreamContent

logger = logging.getLogger("Hush.StreamingClient")

UpdateCallback = Callable[[StreamContent], None]
ErrorCallback = Callable[[StreamingError], None]
CompleteCallback = Callable[[str], None]

ACTIVE_STATES: Final[frozenset[StreamState]] = frozenset(
    {StreamState.REQUESTING, StreamState.STREAMING}
)
ERROR_BODY_PREVIEW: Final[int] = 500

RequestSpec = tuple[str, dict[str, str], dict[str, JSONValue]]


def encode_request_body(payload: dict[str, JSONValue]) -> bytes:
    try:
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise RequestEncodingError(f"Не удалось сериализовать тело запроса: {exc}") from exc


class StreamingClient(ABC):
    """Один активный потоковый запрос к провайдеру на экземпляр клиента.

    Основной интерфейс: `stream()`, асинхронный итератор событий, где
    последнее событие всегда терминальное (completed/failed), а отмена
    не порождает событий. Callback-интерфейс
    `generate_structured_streaming_content()` построен поверх него и
    вызывает callbacks в потоке event loop.
    """

    provider_name: str = ""
    api_key_env: str = ""
    default_base_url: str = ""

    def __init__(self, api_key: str | None, default_config: ModelConfig) -> None:
        self.api_key = api_key or default_config.api_key or os.getenv(self.api_key_env)
        self.default_config = default_config
        self.base_url = (default_config.base_url or self.default_base_url).rstrip("/")
        self._state = StreamState.IDLE
        self._full_text = ""
        self._generation = 0
        self._task: asyncio.Task[None] | None = None
        self._on_update: UpdateCallback | None = None
        self._on_error: ErrorCallback | None = None
        self._on_complete: CompleteCallback | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state in ACTIVE_STATES

    @property
    def full_text(self) -> str:
        return self._full_text

    @property
    def has_callbacks(self) -> bool:
        return any(cb is not None for cb in (self._on_update, self._on_error, self._on_complete))

    # --- channel API -------------------------------------------------------

    async def stream(
        self,
        prompt: str,
        images: Sequence[ImageSource] = (),
    ) -> AsyncIterator[StreamEvent]:
        if asyncio.current_task() is not self._task:
            self.cancel_streaming()
        self._generation += 1
        token = self._generation
        self._set_text(token, "")

        try:
            api_key = self._require_api_key()
            url, headers, payload = self._build_request(prompt, encode_images(images), api_key)
            body = encode_request_body(payload)
        except StreamingError as exc:
            self._set_state(token, StreamState.FAILED)
            logger.error("%s request rejected: %s", self.provider_name, exc)
            yield StreamEvent.failed(exc)
            return

        self._set_state(token, StreamState.REQUESTING)
        logger.info("%s streaming request initiated", self.provider_name)
        logger.debug("%s request payload: %s", self.provider_name, sanitize_record(payload))

        cfg = self.default_config
        timeout = aiohttp.ClientTimeout(total=cfg.resource_timeout, sock_read=cfg.request_timeout)
        decoder = self._create_decoder()
        full_text = ""
        failure: StreamingError | None = None
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, data=body, headers=headers) as response:
                    if response.status >= 400:
                        detail = (await response.text())[:ERROR_BODY_PREVIEW]
                        raise StreamTransportError(
                            self._http_error_message(response.status, detail),
                            status=response.status,
                        )
                    self._set_state(token, StreamState.STREAMING)
                    async for chunk in response.content.iter_any():
                        if token != self._generation:
                            logger.info(
                                "%s: request superseded, dropping stream", self.provider_name
                            )
                            return
                        result = decoder.feed(chunk)
                        if result.delta:
                            full_text += result.delta
                            yield self._update_event(token, full_text, result.delta)
                        if result.completed:
                            logger.info("%s: received stream completion marker", self.provider_name)
                            break
                    else:
                        if token != self._generation:
                            return
                        result = decoder.finish()
                        if result.delta:
                            full_text += result.delta
                            yield self._update_event(token, full_text, result.delta)
                        logger.info("%s: stream completed by server", self.provider_name)
        except StreamingError as exc:
            failure = exc
        except (aiohttp.ClientError, TimeoutError) as exc:
            failure = StreamTransportError(
                f"Ошибка соединения с {self.provider_name}: {exc or type(exc).__name__}"
            )
            failure.__cause__ = exc
        except (asyncio.CancelledError, GeneratorExit):
            self._set_state(token, StreamState.CANCELLED)
            logger.info("%s streaming request cancelled", self.provider_name)
            raise

        if token != self._generation:
            return
        if failure is not None:
            self._set_state(token, StreamState.FAILED)
            logger.error("%s stream error: %s", self.provider_name, failure)
            yield StreamEvent.failed(failure, text=full_text)
            return

        self._set_state(token, StreamState.COMPLETED)
        content = StreamContentBuilder(full_text).build(finished=True)
        yield StreamEvent.completed(content, text=full_text)

    # --- callback API ------------------------------------------------------

    def generate_structured_streaming_content(
        self,
        prompt: str,
        images: Sequence[ImageSource],
        on_update: UpdateCallback,
        on_error: ErrorCallback,
        on_complete: CompleteCallback | None = None,
    ) -> asyncio.Task[None] | None:
        """Запустить потоковую генерацию; вызывать из работающего event loop."""
        if not self.is_configured:
            on_error(MissingAPIKeyError(self.provider_name, self.api_key_env))
            return None

        self.cancel_streaming()
        self._on_update = on_update
        self._on_error = on_error
        self._on_complete = on_complete
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._drive(prompt, list(images)))
        self._task = task
        return task

    def cancel_streaming(self) -> None:
        task = self._task
        self._task = None
        self._clear_callbacks()
        self._full_text = ""
        if self._state in ACTIVE_STATES or (task is not None and not task.done()):
            self._generation += 1
            self._state = StreamState.CANCELLED
            logger.info("%s streaming request cancelled", self.provider_name)
        if task is not None and not task.done():
            task.cancel()

    async def _drive(self, prompt: str, images: list[ImageSource]) -> None:
        current = asyncio.current_task()
        async with aclosing(self.stream(prompt, images)) as events:
            async for event in events:
                if self._task is not current:
                    return
                self._dispatch(event)
                if event.is_terminal:
                    self._task = None
                    self._clear_callbacks()
                    return

    def _dispatch(self, event: StreamEvent) -> None:
        try:
            if event.kind == "failed":
                if self._on_error is not None and event.error is not None:
                    self._on_error(event.error)
                return
            if self._on_update is not None:
                self._on_update(event.content)
            if event.kind == "completed" and self._on_complete is not None:
                self._on_complete(event.text)
        except Exception as exc:  # noqa: BLE001
            logger.error("%s callback failed: %s", self.provider_name, exc)

    def _clear_callbacks(self) -> None:
        self._on_update = None
        self._on_error = None
        self._on_complete = None

    # --- one-shot API ------------------------------------------------------

    def complete(self, prompt: str, images: Sequence[ImageSource] = ()) -> LLMResult:
        api_key = self._require_api_key()
        url, headers, payload = self._build_complete_request(prompt, encode_images(images), api_key)
        body = encode_request_body(payload)
        try:
            response = requests.post(
                url,
                data=body,
                headers=headers,
                timeout=self.default_config.request_timeout,
            )
            response.raise_for_status()
            data_json = response.json()
        except requests.RequestException as exc:
            raise StreamTransportError(
                f"Ошибка запроса к {self.provider_name}: {exc}",
                status=getattr(exc.response, "status_code", None),
            ) from exc
        except ValueError as exc:
            raise StreamTransportError(f"Некорректный ответ {self.provider_name}.") from exc
        if not isinstance(data_json, dict):
            raise StreamTransportError(f"Некорректный ответ {self.provider_name}.")
        data: dict[str, JSONValue] = data_json
        error_raw = data.get("error")
        if error_raw:
            raise StreamTransportError(provider_error_message(error_raw))
        return LLMResult(text=self._extract_text(data), raw=data)

    # --- provider hooks ----------------------------------------------------

    @abstractmethod
    def _build_request(self, prompt: str, images_b64: list[str], api_key: str) -> RequestSpec:
        raise NotImplementedError

    @abstractmethod
    def _build_complete_request(
        self, prompt: str, images_b64: list[str], api_key: str
    ) -> RequestSpec:
        raise NotImplementedError

    @abstractmethod
    def _create_decoder(self) -> StreamDecoder:
        raise NotImplementedError

    @abstractmethod
    def _extract_text(self, document: dict[str, JSONValue]) -> str:
        raise NotImplementedError

    # --- internals ---------------------------------------------------------

    def _require_api_key(self) -> str:
        if not self.api_key or not self.api_key.strip():
            raise MissingAPIKeyError(self.provider_name, self.api_key_env)
        return self.api_key.strip()

    def _base_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        headers.update(self.default_config.extra_headers)
        return headers

    def _http_error_message(self, status: int, detail: str) -> str:
        parsed = safe_json_loads(detail)
        if isinstance(parsed, dict) and parsed.get("error"):
            detail = provider_error_message(parsed["error"])
        return f"{self.provider_name} вернул HTTP {status}: {detail.strip() or 'без описания'}"

    def _update_event(self, token: int, full_text: str, delta: str) -> StreamEvent:
        if token == self._generation:
            self._full_text = full_text
        content = StreamContentBuilder(full_text).build()
        return StreamEvent.update(content, delta=delta, text=full_text)

    def _set_state(self, token: int, state: StreamState) -> None:
        if token == self._generation:
            self._state = state

    def _set_text(self, token: int, text: str) -> None:
        if token == self._generation:
            self._full_text = text
