from __future__ import annotations

import json
from pathlib import Path

from config.settings import AppSettings, MemoryEntry
from core.assistant import InterviewAssistant, api_key_notice, build_assistant, model_config_for
from core.chat_session_service import ChatSessionService
from llm.errors import StreamingError, StreamTransportError
from llm.gemini_client import GeminiStreamingClient
from llm.types import LLMResult
from shared.models import MessageSender
from shared.stream_models import StreamContent


class FakeClient:
    def __init__(self, provider_name: str, *, configured: bool = True, reply: str = "") -> None:
        self.provider_name = provider_name
        self.is_configured = configured
        self.reply = reply
        self.prompts: list[str] = []
        self.images: list[list[object]] = []
        self.cancel_calls = 0
        self.on_update = None
        self.on_error = None

    def generate_structured_streaming_content(
        self, prompt, images, on_update, on_error, on_complete=None
    ):
        self.prompts.append(prompt)
        self.images.append(list(images))
        self.on_update = on_update
        self.on_error = on_error
        return None

    def cancel_streaming(self) -> None:
        self.cancel_calls += 1

    def complete(self, prompt, images=()) -> LLMResult:
        self.prompts.append(prompt)
        return LLMResult(text=self.reply)


def _assistant(
    tmp_path: Path, *, model: str = "gemini-2.5-flash", configured: bool = True
) -> tuple[InterviewAssistant, dict[str, FakeClient], list[StreamContent]]:
    settings = AppSettings(model=model, saved_chats_dir=tmp_path)
    clients = {
        "gemini": FakeClient("gemini", configured=configured, reply="blocking answer"),
        "openai": FakeClient("openai", configured=configured),
    }
    assistant = InterviewAssistant(settings, ChatSessionService(tmp_path, settings), clients)
    published: list[StreamContent] = []
    assistant.subscribe(published.append)
    return assistant, clients, published


def _saved_messages(tmp_path: Path) -> list[tuple[str, str]]:
    files = sorted(tmp_path.glob("chat_*.json"))
    assert len(files) == 1
    data = json.loads(files[0].read_text(encoding="utf-8"))
    return [(item["sender"], item["content"]) for item in data["messages"]]


def test_activation_reuses_current_session(tmp_path: Path) -> None:
    assistant, _, _ = _assistant(tmp_path)
    assistant.set_chat_active(True)
    session = assistant.sessions.current_session
    assistant.set_chat_active(True)
    assert session is not None
    assert assistant.sessions.current_session is session


def test_text_exchange_is_journaled(tmp_path: Path) -> None:
    assistant, clients, published = _assistant(tmp_path)
    assistant.set_chat_active(True)

    assert assistant.send_message("hello") is None
    client = clients["gemini"]
    assert client.prompts[0].endswith("\n\nhello")
    assert assistant.is_processing and assistant.is_streaming

    client.on_update(StreamContent.from_markdown("hi", finished=False))
    assert assistant.is_streaming
    assert _saved_messages(tmp_path) == [("user", "hello")]

    client.on_update(StreamContent.from_markdown("hi there"))
    assert not assistant.is_processing
    assert not assistant.is_streaming
    assert published[-1].text == "hi there"
    assert _saved_messages(tmp_path) == [("user", "hello"), ("ai", "hi there")]


def test_transcript_and_memories_reach_prompt(tmp_path: Path) -> None:
    assistant, clients, _ = _assistant(tmp_path)
    assistant.settings.memories = [MemoryEntry(id="1", name="Stack", content="Go")]
    assistant.set_chat_active(True)
    assistant.send_message("answer", transcript="what is a goroutine")
    prompt = clients["gemini"].prompts[0]
    assert prompt.startswith("Important context to remember:")
    assert "Transcription context:\nwhat is a goroutine\n\nUser input:\nanswer" in prompt


def test_error_is_published_and_stops_processing(tmp_path: Path) -> None:
    assistant, clients, published = _assistant(tmp_path)
    assistant.set_chat_active(True)
    assistant.send_message("hello")
    error: StreamingError = StreamTransportError("boom", status=500)
    clients["gemini"].on_error(error)
    assert not assistant.is_processing
    assert published[-1].finished
    assert published[-1].errors[0].error is error
    assert _saved_messages(tmp_path) == [("user", "hello")]


def test_unconfigured_client_shows_notice(tmp_path: Path) -> None:
    assistant, clients, published = _assistant(tmp_path, configured=False)
    assistant.set_chat_active(True)
    assistant.send_message("hello")
    assert clients["gemini"].prompts == []
    assert published[-1].text == api_key_notice("gemini")
    assert published[-1].finished
    assert not assistant.is_processing


def test_model_selects_provider(tmp_path: Path) -> None:
    assistant, clients, _ = _assistant(tmp_path, model="gpt-4o")
    assistant.set_chat_active(True)
    assistant.send_message("hello")
    assert clients["openai"].prompts
    assert clients["gemini"].prompts == []


def test_screenshots_with_transcript_only(tmp_path: Path) -> None:
    assistant, clients, _ = _assistant(tmp_path)
    assistant.set_chat_active(True)
    assistant.process_screenshots([b"png"], transcript="reverse a list")
    client = clients["gemini"]
    assert client.images == [[b"png"]]
    assert "Transcription context: reverse a list" in client.prompts[0]
    assert _saved_messages(tmp_path) == [("user", "Transcription: reverse a list")]


def test_send_message_with_images_records_text_once(tmp_path: Path) -> None:
    assistant, clients, _ = _assistant(tmp_path)
    assistant.set_chat_active(True)
    assistant.send_message("optimize this", [b"png"], transcript="two sum")
    assert clients["gemini"].prompts[0].endswith("User input:\noptimize this")
    assert _saved_messages(tmp_path) == [("user", "optimize this")]


def test_empty_message_is_ignored(tmp_path: Path) -> None:
    assistant, clients, _ = _assistant(tmp_path)
    assistant.set_chat_active(True)
    assert assistant.send_message("") is None
    assert clients["gemini"].prompts == []
    assert assistant.sessions.current_session.is_empty


def test_deactivation_closes_session(tmp_path: Path) -> None:
    assistant, _, _ = _assistant(tmp_path)
    assistant.set_chat_active(True)
    assistant.send_message("hello")
    assistant.set_chat_active(False)
    assert assistant.sessions.current_session is None
    assert _saved_messages(tmp_path) == [("user", "hello")]


def test_new_session_cancels_and_resets(tmp_path: Path) -> None:
    assistant, clients, published = _assistant(tmp_path)
    assistant.set_chat_active(True)
    first = assistant.sessions.current_session
    assistant.send_message("hello")
    assistant.new_session()
    assert assistant.sessions.current_session is not first
    assert all(client.cancel_calls == 1 for client in clients.values())
    assert published[-1].items == []
    assert not assistant.is_processing


def test_ask_blocking_records_answer(tmp_path: Path) -> None:
    assistant, _, _ = _assistant(tmp_path)
    assistant.set_chat_active(True)
    content = assistant.ask_blocking("hello")
    assert content.finished
    assert content.text == "blocking answer"
    session = assistant.sessions.current_session
    assert session is not None
    assert [m.sender for m in session.messages] == [MessageSender.USER, MessageSender.AI]


def test_model_config_for_mismatched_provider() -> None:
    settings = AppSettings(model="gpt-4o", gemini_api_key="g")
    gemini = model_config_for(settings, "gemini")
    openai = model_config_for(settings, "openai")
    assert gemini.model == "gemini-2.5-flash"
    assert gemini.api_key == "g"
    assert openai.model == "gpt-4o"
    assert openai.api_key is None


def test_build_assistant_wires_real_clients(tmp_path: Path) -> None:
    assistant = build_assistant(AppSettings(gemini_api_key="g", saved_chats_dir=tmp_path))
    assert isinstance(assistant.active_client, GeminiStreamingClient)
    assert assistant.active_client.is_configured
    assert not assistant.clients["openai"].is_configured


def test_resign_active_and_sleep_flush_session(tmp_path: Path) -> None:
    assistant, _, _ = _assistant(tmp_path)
    assistant.set_chat_active(True)
    assistant.settings.save_chats_locally = False
    assistant.send_message("kept in memory")
    assert list(tmp_path.glob("chat_*.json")) == []

    assistant.settings.save_chats_locally = True
    assistant.on_app_resign_active()
    assert _saved_messages(tmp_path) == [("user", "kept in memory")]

    assistant.settings.save_chats_locally = False
    assistant.sessions.add_user_message("before sleep")
    assistant.settings.save_chats_locally = True
    assistant.on_system_sleep()
    assert _saved_messages(tmp_path) == [
        ("user", "kept in memory"),
        ("user", "before sleep"),
    ]


def test_reopen_and_wake_restart_session_only_when_chat_active(tmp_path: Path) -> None:
    assistant, _, _ = _assistant(tmp_path)
    assistant.on_app_reopen()
    assistant.on_system_wake()
    assert assistant.sessions.current_session is None

    assistant.set_chat_active(True)
    assistant.sessions.close_current_session()
    assistant.on_app_reopen()
    reopened = assistant.sessions.current_session
    assert reopened is not None

    assistant.sessions.close_current_session()
    assistant.on_system_wake()
    woken = assistant.sessions.current_session
    assert woken is not None
    assert woken is not reopened

    assistant.on_system_wake()
    assert assistant.sessions.current_session is woken


def test_shutdown_cancels_streams_and_closes_session(tmp_path: Path) -> None:
    assistant, clients, _ = _assistant(tmp_path)
    assistant.set_chat_active(True)
    assistant.send_message("hello")
    assistant.shutdown()
    assert all(client.cancel_calls == 1 for client in clients.values())
    assert assistant.sessions.current_session is None
    assert _saved_messages(tmp_path) == [("user", "hello")]
