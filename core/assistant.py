from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence

from config.settings import AppSettings
from core.chat_session_service import ChatSessionService
from core.prompt_builder import compose_screenshot_prompt, compose_text_prompt
from llm.client_factory import DEFAULT_MODELS, create_streaming_client, provider_for_model
from llm.errors import StreamingError
from llm.images import ImageSource
from llm.streaming_client import StreamingClient
from llm.types import ModelConfig, ProviderName
from shared.stream_models import StreamContent

logger = logging.getLogger("Hush.Assistant")

PROVIDER_TITLES: dict[ProviderName, str] = {"gemini": "Gemini", "openai": "OpenAI"}

ContentListener = Callable[[StreamContent], None]


def api_key_notice(provider: ProviderName) -> str:
    title = PROVIDER_TITLES[provider]
    return "\n".join(
        [
            "# ⚠️ API Key Not Configured",
            "",
            f"Please add your {title} API key in the settings to use AI features.",
        ]
    )


def model_config_for(settings: AppSettings, provider: ProviderName) -> ModelConfig:
    model = settings.model
    if provider_for_model(model) != provider:
        model = DEFAULT_MODELS[provider]
    return ModelConfig(provider=provider, model=model, api_key=settings.api_key_for(provider))


class InterviewAssistant:
    """Связывает настройки, журнал сессий и потоковые клиенты.

    Все методы вызываются из потока event loop; callbacks клиентов приходят
    туда же, поэтому журнал сессий не требует блокировок.
    """

    def __init__(
        self,
        settings: AppSettings,
        sessions: ChatSessionService,
        clients: Mapping[ProviderName, StreamingClient],
    ) -> None:
        self.settings = settings
        self.sessions = sessions
        self.clients = dict(clients)
        self.content = StreamContent()
        self.is_chat_active = False
        self.is_processing = False
        self.is_streaming = False
        self._listeners: list[ContentListener] = []

    def subscribe(self, listener: ContentListener) -> None:
        self._listeners.append(listener)

    @property
    def active_client(self) -> StreamingClient:
        return self.clients[provider_for_model(self.settings.model)]

    # --- lifecycle ---------------------------------------------------------

    def set_chat_active(self, active: bool) -> None:
        self.is_chat_active = active
        if active:
            if self.sessions.current_session is None:
                self.sessions.start_new_session()
            else:
                self.sessions.save_current_session()
            logger.info("Chat activated")
            return
        self.sessions.close_current_session()
        logger.info("Chat deactivated, session closed")

    def on_app_resign_active(self) -> None:
        self.sessions.save_current_session()

    def on_system_sleep(self) -> None:
        self.sessions.save_current_session()

    def on_app_reopen(self) -> None:
        self._ensure_session()

    def on_system_wake(self) -> None:
        self._ensure_session()

    def shutdown(self) -> None:
        self.cancel_all()
        self.sessions.close_current_session()

    def new_session(self) -> None:
        self.sessions.start_new_session()
        self.cancel_all()
        self.is_processing = False
        self.is_streaming = False
        self._publish(StreamContent())

    def cancel_all(self) -> None:
        for client in self.clients.values():
            client.cancel_streaming()

    # --- requests ----------------------------------------------------------

    def send_message(
        self,
        text: str,
        images: Sequence[ImageSource] = (),
        *,
        transcript: str = "",
    ) -> asyncio.Task[None] | None:
        if not text:
            return None
        self._ensure_session()
        self.sessions.add_user_message(text)
        if images:
            return self.process_screenshots(images, transcript=transcript, chat_text=text)
        return self.process_text(text, transcript=transcript, record_user_message=False)

    def process_text(
        self,
        text: str,
        *,
        transcript: str = "",
        record_user_message: bool = True,
    ) -> asyncio.Task[None] | None:
        self._begin()
        if record_user_message:
            self.sessions.add_user_message(text)
        prompt = compose_text_prompt(
            text,
            transcript=transcript,
            custom_prompt=self.settings.selected_prompt,
            memories=self.settings.enabled_memories,
        )
        return self._run(prompt, ())

    def process_screenshots(
        self,
        images: Sequence[ImageSource],
        *,
        transcript: str = "",
        chat_text: str = "",
    ) -> asyncio.Task[None] | None:
        if not images:
            return None
        self._begin()
        if transcript and not chat_text:
            self.sessions.add_user_message(f"Transcription: {transcript}")
        prompt = compose_screenshot_prompt(
            text=chat_text,
            transcript=transcript,
            custom_prompt=self.settings.selected_prompt,
            memories=self.settings.enabled_memories,
        )
        return self._run(prompt, images)

    def ask_blocking(
        self,
        text: str,
        images: Sequence[ImageSource] = (),
        *,
        transcript: str = "",
    ) -> StreamContent:
        """Один запрос без потоковой передачи (для CLI и скриптов)."""
        self._ensure_session()
        self._begin()
        self.sessions.add_user_message(text)
        client = self.active_client
        if images:
            prompt = compose_screenshot_prompt(
                text=text,
                transcript=transcript,
                custom_prompt=self.settings.selected_prompt,
                memories=self.settings.enabled_memories,
            )
        else:
            prompt = compose_text_prompt(
                text,
                transcript=transcript,
                custom_prompt=self.settings.selected_prompt,
                memories=self.settings.enabled_memories,
            )
        try:
            result = client.complete(prompt, images)
        except StreamingError as exc:
            self._handle_error(exc)
            return self.content
        self._handle_update(StreamContent.from_markdown(result.text))
        return self.content

    # --- internals ---------------------------------------------------------

    def _ensure_session(self) -> None:
        if self.is_chat_active and self.sessions.current_session is None:
            self.sessions.start_new_session()

    def _begin(self) -> None:
        self.is_processing = True
        self.is_streaming = True
        self._publish(StreamContent())

    def _run(
        self, prompt: str, images: Sequence[ImageSource]
    ) -> asyncio.Task[None] | None:
        client = self.active_client
        if not client.is_configured:
            logger.warning("%s API key is not configured", client.provider_name)
            self.is_processing = False
            self.is_streaming = False
            self._publish(StreamContent.from_markdown(api_key_notice(client.provider_name)))
            return None
        return client.generate_structured_streaming_content(
            prompt,
            images,
            on_update=self._handle_update,
            on_error=self._handle_error,
        )

    def _handle_update(self, content: StreamContent) -> None:
        self.is_streaming = not content.finished
        if content.finished:
            self.is_processing = False
            self.sessions.add_ai_response(content.text)
        self._publish(content)

    def _handle_error(self, error: StreamingError) -> None:
        logger.error("AI request failed: %s", error)
        self.is_processing = False
        self.is_streaming = False
        self._publish(StreamContent.from_error(error))

    def _publish(self, content: StreamContent) -> None:
        self.content = content
        for listener in self._listeners:
            listener(content)


def build_assistant(settings: AppSettings) -> InterviewAssistant:
    sessions = ChatSessionService(settings.saved_chats_dir, settings)
    clients: dict[ProviderName, StreamingClient] = {
        provider: create_streaming_client(model_config_for(settings, provider))
        for provider in PROVIDER_TITLES
    }
    return InterviewAssistant(settings, sessions, clients)
