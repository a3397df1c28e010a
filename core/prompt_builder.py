from __future__ import annotations

from collections.abc import Sequence

from config.settings import CustomPrompt, MemoryEntry

DEFAULT_TEXT_PROMPT = (
    "You are an AI that helps me answer questions like I'm speaking in a real interview. "
    "Respond as if I'm the one giving the answer, using clear, confident, and conversational "
    "language — no dramatic, overly formal, or show-offy words. Keep it natural and direct, "
    "like I'm explaining things in a relaxed, professional way. Only respond to the latest "
    "question — don't repeat or summarize older context unless I ask for it."
)

DEFAULT_SCREENSHOT_PROMPT = "\n".join(
    [
        "- Write ONLY code and comments",
        "- Please ensure your code is readable and contains short comments",
        "- Write clean and bug-free code (check & debug if necessary), optimize your code",
        "- Please do not use brute-force approach or pseudo code",
        "- Consider all possible edge cases and test cases",
    ]
)


def compose_text_prompt(
    text: str,
    *,
    transcript: str = "",
    custom_prompt: CustomPrompt | None = None,
    memories: Sequence[MemoryEntry] = (),
) -> str:
    prompt = text
    if transcript:
        prompt = f"Transcription context:\n{transcript}\n\nUser input:\n{text}"
    prompt = _with_instructions(prompt, custom_prompt, DEFAULT_TEXT_PROMPT)
    return _with_memories(prompt, memories)


def compose_screenshot_prompt(
    *,
    text: str = "",
    transcript: str = "",
    custom_prompt: CustomPrompt | None = None,
    memories: Sequence[MemoryEntry] = (),
) -> str:
    prompt = ""
    if transcript:
        prompt = f"{prompt}\n\nTranscription context: {transcript}"
    if text:
        prompt = f"{prompt}\n\nUser input:\n{text}"
    prompt = _with_instructions(prompt, custom_prompt, DEFAULT_SCREENSHOT_PROMPT)
    return _with_memories(prompt, memories)


def memory_context(memories: Sequence[MemoryEntry]) -> str:
    if not memories:
        return ""
    entries = [
        f"Memory {index} - {memory.name}: {memory.content}"
        for index, memory in enumerate(memories, start=1)
    ]
    return "Important context to remember:\n\n" + "\n\n".join(entries)


def _with_instructions(prompt: str, custom_prompt: CustomPrompt | None, default: str) -> str:
    instructions = custom_prompt.prompt if custom_prompt is not None else default
    return f"{instructions}\n\n{prompt}"


def _with_memories(prompt: str, memories: Sequence[MemoryEntry]) -> str:
    context = memory_context(memories)
    if not context:
        return prompt
    return f"{context}\n\n---\n\n{prompt}"
