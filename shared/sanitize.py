from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Final

from shared.models import JSONValue

SECRET_KEYS: Final[frozenset[str]] = frozenset(
    {"api_key", "authorization", "x-api-key", "x-goog-api-key", "key", "token", "secret"}
)
# base64 картинок в логах заменяется дайджестом.
IMAGE_KEYS: Final[frozenset[str]] = frozenset({"data", "image_url"})
BODY_KEYS: Final[tuple[str, ...]] = ("input", "contents")
PREVIEW_CHARS: Final[int] = 64
MAX_RECORD_BYTES: Final[int] = 4096


def digest(value: str) -> dict[str, JSONValue]:
    """Превью, размер и sha256 вместо большого значения."""
    raw = value.encode("utf-8", errors="replace")
    preview = value[:PREVIEW_CHARS]
    if len(value) > PREVIEW_CHARS:
        preview += "…[truncated]"
    return {
        "preview": preview,
        "bytes_count": len(raw),
        "sha256": hashlib.sha256(raw).hexdigest(),
    }


def _scrub(key: str, value: JSONValue) -> JSONValue:
    name = key.lower()
    if name in SECRET_KEYS:
        return "[secret]"
    if isinstance(value, Mapping):
        return {str(k): _scrub(str(k), v) for k, v in value.items()}
    if isinstance(value, list):
        return [_scrub(key, item) for item in value]
    if isinstance(value, str) and name in IMAGE_KEYS:
        return digest(value)
    return value


def sanitize_record(
    record: Mapping[str, JSONValue],
    *,
    max_bytes: int = MAX_RECORD_BYTES,
) -> dict[str, JSONValue]:
    """Тело запроса для debug-лога: без ключей, картинок и слишком длинных промптов."""
    sanitized = {key: _scrub(key, value) for key, value in record.items()}
    if len(json.dumps(sanitized, ensure_ascii=False).encode("utf-8")) <= max_bytes:
        return sanitized
    for key in BODY_KEYS:
        if key in sanitized:
            sanitized[key] = digest(json.dumps(sanitized[key], ensure_ascii=False))
    return sanitized


def safe_json_loads(raw: str) -> object | None:
    try:
        parsed: object = json.loads(raw)
        return parsed
    except json.JSONDecodeError:
        return None
