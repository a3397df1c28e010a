from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

DEFAULT_PATH: Final[Path] = Path("config/settings.json")
DEFAULT_MODEL: Final[str] = "gemini-2.5-flash"
DEFAULT_SAVED_CHATS_DIR: Final[Path] = Path.home() / "Documents" / "saved_chats"
PROVIDER_API_KEY_ENV: Final[dict[str, str]] = {
    "gemini": "GEMINI_API_KEY",
    "openai": "OPENAI_API_KEY",
}
TRUE_VALUES: Final[set[str]] = {"1", "true", "yes", "on"}
FALSE_VALUES: Final[set[str]] = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class CustomPrompt:
    id: str
    name: str
    prompt: str


@dataclass(frozen=True)
class MemoryEntry:
    id: str
    name: str
    content: str
    is_enabled: bool = True


@dataclass
class AppSettings:
    """Пользовательские настройки: ключи, модель, промпты и сохранение чатов."""

    gemini_api_key: str | None = None
    openai_api_key: str | None = None
    model: str = DEFAULT_MODEL
    save_chats_locally: bool = True
    saved_chats_dir: Path = DEFAULT_SAVED_CHATS_DIR
    custom_prompts: list[CustomPrompt] = field(default_factory=list)
    selected_prompt_id: str | None = None
    memories: list[MemoryEntry] = field(default_factory=list)

    @property
    def selected_prompt(self) -> CustomPrompt | None:
        if self.selected_prompt_id is None:
            return None
        for prompt in self.custom_prompts:
            if prompt.id == self.selected_prompt_id:
                return prompt
        return None

    @property
    def enabled_memories(self) -> list[MemoryEntry]:
        return [memory for memory in self.memories if memory.is_enabled]

    def api_key_for(self, provider: str) -> str | None:
        if provider == "gemini":
            return self.gemini_api_key
        if provider == "openai":
            return self.openai_api_key
        raise ValueError(f"Неизвестный провайдер: {provider}")

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> AppSettings:
        return cls(
            gemini_api_key=_read_optional_str(data, "gemini_api_key"),
            openai_api_key=_read_optional_str(data, "openai_api_key"),
            model=_read_str(data, "model", DEFAULT_MODEL),
            save_chats_locally=_read_bool(data, "save_chats_locally", True),
            saved_chats_dir=Path(
                _read_str(data, "saved_chats_dir", str(DEFAULT_SAVED_CHATS_DIR))
            ).expanduser(),
            custom_prompts=[_parse_prompt(item) for item in _read_list(data, "custom_prompts")],
            selected_prompt_id=_read_optional_str(data, "selected_prompt_id"),
            memories=[_parse_memory(item) for item in _read_list(data, "memories")],
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "gemini_api_key": self.gemini_api_key,
            "openai_api_key": self.openai_api_key,
            "model": self.model,
            "save_chats_locally": self.save_chats_locally,
            "saved_chats_dir": str(self.saved_chats_dir),
            "custom_prompts": [
                {"id": item.id, "name": item.name, "prompt": item.prompt}
                for item in self.custom_prompts
            ],
            "selected_prompt_id": self.selected_prompt_id,
            "memories": [
                {
                    "id": item.id,
                    "name": item.name,
                    "content": item.content,
                    "is_enabled": item.is_enabled,
                }
                for item in self.memories
            ],
        }


def load_app_settings(path: Path = DEFAULT_PATH) -> AppSettings:
    if not path.exists():
        return AppSettings()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("settings.json должен содержать объект.")
        return AppSettings.from_dict(data)
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(f"Ошибка чтения настроек: {exc}") from exc


def save_app_settings(settings: AppSettings, path: Path = DEFAULT_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")


def resolve_app_settings(path: Path = DEFAULT_PATH) -> AppSettings:
    settings = load_app_settings(path)

    model_raw = os.getenv("HUSH_MODEL")
    if isinstance(model_raw, str) and model_raw.strip():
        settings.model = model_raw.strip()

    dir_raw = os.getenv("HUSH_SAVED_CHATS_DIR")
    if isinstance(dir_raw, str) and dir_raw.strip():
        settings.saved_chats_dir = Path(dir_raw.strip()).expanduser()

    save_raw = os.getenv("HUSH_SAVE_CHATS_LOCALLY")
    if isinstance(save_raw, str) and save_raw.strip():
        normalized = save_raw.strip().lower()
        if normalized in TRUE_VALUES:
            settings.save_chats_locally = True
        elif normalized in FALSE_VALUES:
            settings.save_chats_locally = False
        else:
            raise ValueError("HUSH_SAVE_CHATS_LOCALLY должен быть bool.")

    gemini_key = os.getenv(PROVIDER_API_KEY_ENV["gemini"])
    if not settings.gemini_api_key and gemini_key and gemini_key.strip():
        settings.gemini_api_key = gemini_key.strip()
    openai_key = os.getenv(PROVIDER_API_KEY_ENV["openai"])
    if not settings.openai_api_key and openai_key and openai_key.strip():
        settings.openai_api_key = openai_key.strip()
    return settings


def _read_str(data: dict[str, object], key: str, default: str) -> str:
    raw = data.get(key, default)
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError(f"{key} должен быть непустой строкой")
    return raw.strip()


def _read_optional_str(data: dict[str, object], key: str) -> str | None:
    raw = data.get(key)
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValueError(f"{key} должен быть строкой")
    return raw.strip() or None


def _read_bool(data: dict[str, object], key: str, default: bool) -> bool:
    raw = data.get(key, default)
    if not isinstance(raw, bool):
        raise ValueError(f"{key} должен быть bool")
    return raw


def _read_list(data: dict[str, object], key: str) -> list[dict[str, object]]:
    raw = data.get(key, [])
    if not isinstance(raw, list):
        raise ValueError(f"{key} должен быть списком")
    items: list[dict[str, object]] = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValueError(f"{key} должен содержать объекты")
        items.append(item)
    return items


def _parse_prompt(item: dict[str, object]) -> CustomPrompt:
    return CustomPrompt(
        id=_read_str(item, "id", ""),
        name=_read_str(item, "name", ""),
        prompt=_read_str(item, "prompt", ""),
    )


def _parse_memory(item: dict[str, object]) -> MemoryEntry:
    return MemoryEntry(
        id=_read_str(item, "id", ""),
        name=_read_str(item, "name", ""),
        content=_read_str(item, "content", ""),
        is_enabled=_read_bool(item, "is_enabled", True),
    )
