from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _isolate_provider_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "GEMINI_API_KEY",
        "OPENAI_API_KEY",
        "HUSH_MODEL",
        "HUSH_SAVED_CHATS_DIR",
        "HUSH_SAVE_CHATS_LOCALLY",
    ):
        monkeypatch.delenv(name, raising=False)
