from __future__ import annotations

from config.settings import CustomPrompt, MemoryEntry
from core.prompt_builder import (
    DEFAULT_SCREENSHOT_PROMPT,
    DEFAULT_TEXT_PROMPT,
    compose_screenshot_prompt,
    compose_text_prompt,
    memory_context,
)


def test_text_prompt_uses_default_instructions() -> None:
    assert compose_text_prompt("What is GIL?") == f"{DEFAULT_TEXT_PROMPT}\n\nWhat is GIL?"


def test_text_prompt_with_transcript() -> None:
    prompt = compose_text_prompt("answer it", transcript="Tell me about yourself")
    assert prompt.endswith(
        "Transcription context:\nTell me about yourself\n\nUser input:\nanswer it"
    )


def test_custom_prompt_replaces_default() -> None:
    custom = CustomPrompt(id="p", name="Short", prompt="Be brief.")
    prompt = compose_text_prompt("hi", custom_prompt=custom)
    assert prompt == "Be brief.\n\nhi"
    assert DEFAULT_TEXT_PROMPT not in prompt


def test_memories_are_prepended() -> None:
    memories = [
        MemoryEntry(id="1", name="Stack", content="Python"),
        MemoryEntry(id="2", name="Level", content="Senior"),
    ]
    prompt = compose_text_prompt("hi", memories=memories)
    context = memory_context(memories)
    assert context == (
        "Important context to remember:\n\n"
        "Memory 1 - Stack: Python\n\n"
        "Memory 2 - Level: Senior"
    )
    assert prompt.startswith(f"{context}\n\n---\n\n{DEFAULT_TEXT_PROMPT}")


def test_memory_context_empty() -> None:
    assert memory_context([]) == ""


def test_screenshot_prompt_sections() -> None:
    prompt = compose_screenshot_prompt(text="fix this", transcript="two sum")
    assert prompt.startswith(DEFAULT_SCREENSHOT_PROMPT)
    assert "Transcription context: two sum" in prompt
    assert prompt.endswith("User input:\nfix this")


def test_screenshot_prompt_without_context() -> None:
    assert compose_screenshot_prompt() == f"{DEFAULT_SCREENSHOT_PROMPT}\n\n"
