from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from config.settings import AppSettings
from shared.models import ChatMessage, ChatSession, MessageSender

logger = logging.getLogger("Hush.ChatSessions")

FILE_EXTENSION: Final[str] = ".json"
FILENAME_PREFIX: Final[str] = "chat_"
FILENAME_DATE_FORMAT: Final[str] = "%Y-%m-%d_%H-%M-%S"
NOMEDIA_FILENAME: Final[str] = ".nomedia"
WRITE_PROBE_FILENAME: Final[str] = "hush_write_test.tmp"
LOG_PREVIEW_CHARS: Final[int] = 20


def session_to_dict(session: ChatSession) -> dict[str, object]:
    return {
        "id": session.id,
        "createdAt": _format_timestamp(session.created_at),
        "lastUpdatedAt": _format_timestamp(session.last_updated_at),
        "messages": [
            {
                "id": message.id,
                "timestamp": _format_timestamp(message.timestamp),
                "content": message.content,
                "sender": message.sender.value,
                "metadata": dict(message.metadata) if message.metadata is not None else None,
            }
            for message in session.messages
        ],
    }


def session_from_dict(data: dict[str, object]) -> ChatSession:
    messages_raw = data.get("messages")
    if not isinstance(messages_raw, list):
        raise ValueError("messages должен быть списком")
    messages: list[ChatMessage] = []
    for item in messages_raw:
        if not isinstance(item, dict):
            raise ValueError("сообщение должно быть объектом")
        metadata_raw = item.get("metadata")
        if metadata_raw is not None and not isinstance(metadata_raw, dict):
            raise ValueError("metadata должен быть объектом")
        messages.append(
            ChatMessage(
                id=_require_str(item, "id"),
                timestamp=_parse_timestamp(_require_str(item, "timestamp")),
                content=_require_str(item, "content"),
                sender=MessageSender(_require_str(item, "sender")),
                metadata=(
                    {str(key): str(value) for key, value in metadata_raw.items()}
                    if metadata_raw is not None
                    else None
                ),
            )
        )
    return ChatSession(
        id=_require_str(data, "id"),
        created_at=_parse_timestamp(_require_str(data, "createdAt")),
        last_updated_at=_parse_timestamp(_require_str(data, "lastUpdatedAt")),
        messages=messages,
    )


def session_filename(session: ChatSession) -> str:
    date_part = session.created_at.astimezone().strftime(FILENAME_DATE_FORMAT)
    return f"{FILENAME_PREFIX}{date_part}_{session.id}{FILE_EXTENSION}"


class ChatSessionService:
    """Журнал одного текущего диалога с сохранением в JSON-файл на сессию.

    Состояние в памяти первично: ошибки записи только логируются и никогда
    не пробрасываются вызывающему коду. Используется из одного потока.
    """

    def __init__(self, directory: Path, settings: AppSettings) -> None:
        self.directory = directory
        self.settings = settings
        self._current: ChatSession | None = None
        self._ensure_directory()
        logger.info("Chat storage directory: %s", self.directory)

    @property
    def current_session(self) -> ChatSession | None:
        return self._current

    def start_new_session(self) -> ChatSession:
        if self._current is not None:
            self.save_current_session()
        session = ChatSession()
        self._current = session
        logger.info("Started new chat session: %s", session.id)
        self.save_current_session()
        return session

    def add_user_message(
        self, text: str, metadata: dict[str, str] | None = None
    ) -> ChatMessage | None:
        return self._append(text, MessageSender.USER, metadata)

    def add_ai_response(
        self, text: str, metadata: dict[str, str] | None = None
    ) -> ChatMessage | None:
        return self._append(text, MessageSender.AI, metadata)

    def save_current_session(self) -> Path | None:
        session = self._current
        if session is None:
            logger.debug("No chat session to save")
            return None
        if session.is_empty:
            logger.debug("Not saving empty chat session %s", session.id)
            return None
        if not self.settings.save_chats_locally:
            logger.debug("Chat saving is disabled in settings")
            return None

        self._ensure_directory()
        path = self.directory / session_filename(session)
        try:
            payload = json.dumps(session_to_dict(session), ensure_ascii=False, indent=2)
            _atomic_write(path, payload)
        except (OSError, ValueError) as exc:
            logger.error("Failed to save chat session %s: %s", session.id, exc)
            self._diagnose_write_failure()
            return None
        logger.info(
            "Chat session saved to %s (messages=%d, last update=%s)",
            path,
            len(session.messages),
            _format_timestamp(session.last_updated_at),
        )
        return path

    def close_current_session(self) -> None:
        logger.info("Closing chat session")
        self.save_current_session()
        self._current = None

    def list_saved_sessions(self) -> list[ChatSession]:
        self._ensure_directory()
        sessions: list[ChatSession] = []
        try:
            paths = sorted(self.directory.iterdir())
        except OSError as exc:
            logger.error("Failed to list saved chat sessions: %s", exc)
            return []
        for path in paths:
            if path.name.startswith(".") or path.suffix != FILE_EXTENSION:
                continue
            session = self.load_session(path)
            if session is not None:
                sessions.append(session)
        logger.info("Listed %d saved chat sessions", len(sessions))
        return sorted(sessions, key=lambda item: item.created_at, reverse=True)

    def load_session(self, path: Path) -> ChatSession | None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("файл сессии должен содержать объект")
            return session_from_dict(data)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to load chat session from %s: %s", path, exc)
            return None

    def _append(
        self, text: str, sender: MessageSender, metadata: dict[str, str] | None
    ) -> ChatMessage | None:
        session = self._current
        if session is None:
            logger.warning("No active chat session to add %s message", sender.value)
            return None
        message = ChatMessage(
            content=text,
            sender=sender,
            metadata=dict(metadata) if metadata is not None else None,
        )
        session.append(message)
        self.save_current_session()
        logger.debug("Added %s message to chat: %s...", sender.value, text[:LOG_PREVIEW_CHARS])
        return message

    def _ensure_directory(self) -> None:
        if self.directory.exists():
            return
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            (self.directory / NOMEDIA_FILENAME).write_text("", encoding="utf-8")
            logger.info("Created saved chats directory at %s", self.directory)
        except OSError as exc:
            logger.error("Failed to create saved chats directory %s: %s", self.directory, exc)
            self._diagnose_directory_failure()

    def _diagnose_directory_failure(self) -> None:
        parent = self.directory.parent
        if not parent.exists():
            logger.warning("Parent directory doesn't exist: %s", parent)
        elif not os.access(parent, os.W_OK):
            logger.warning("Parent directory is not writable: %s", parent)
        probe = parent / WRITE_PROBE_FILENAME
        try:
            probe.write_text("test", encoding="utf-8")
            probe.unlink()
            logger.info("Parent directory is writable: %s", parent)
        except OSError as exc:
            logger.warning("Cannot write to parent directory %s: %s", parent, exc)

    def _diagnose_write_failure(self) -> None:
        if not self.directory.exists():
            logger.warning("Saved chats directory doesn't exist: %s", self.directory)
        elif not os.access(self.directory, os.W_OK):
            logger.warning("Saved chats directory is not writable: %s", self.directory)
        target = self.directory if self.directory.exists() else self.directory.parent
        try:
            usage = shutil.disk_usage(target)
            logger.info("Free space: %d bytes", usage.free)
        except OSError as exc:
            logger.warning("Unable to check free space: %s", exc)


def _atomic_write(path: Path, payload: str) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _format_timestamp(value: datetime) -> str:
    return _ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_timestamp(raw: str) -> datetime:
    return _ensure_utc(datetime.fromisoformat(raw))


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _require_str(data: dict[str, object], key: str) -> str:
    raw = data.get(key)
    if not isinstance(raw, str):
        raise ValueError(f"{key} должен быть строкой")
    return raw
