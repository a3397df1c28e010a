from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from config.settings import DEFAULT_PATH, resolve_app_settings
from core.assistant import InterviewAssistant, build_assistant
from core.chat_session_service import ChatSessionService
from shared.stream_models import StreamContent, render_plain_text


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="hush", description="Interview assistant core")
    parser.add_argument("--config", type=Path, default=DEFAULT_PATH)
    parser.add_argument("-v", "--verbose", action="store_true")
    commands = parser.add_subparsers(dest="command", required=True)

    ask = commands.add_parser("ask", help="Send one prompt and stream the answer")
    ask.add_argument("prompt")
    ask.add_argument("--image", type=Path, action="append", default=[])
    ask.add_argument("--transcript", default="")
    ask.add_argument("--no-stream", action="store_true")

    sessions = commands.add_parser("sessions", help="List saved chat sessions")
    sessions.add_argument("--limit", type=int, default=20)
    return parser.parse_args(argv)


class _StreamPrinter:
    def __init__(self) -> None:
        self._printed = 0

    def __call__(self, content: StreamContent) -> None:
        text = content.text
        if len(text) < self._printed:
            self._printed = 0
        sys.stdout.write(text[self._printed :])
        sys.stdout.flush()
        self._printed = len(text)


async def _ask_streaming(assistant: InterviewAssistant, args: argparse.Namespace) -> None:
    assistant.subscribe(_StreamPrinter())
    task = assistant.send_message(args.prompt, args.image, transcript=args.transcript)
    if task is not None:
        await task


def _run_ask(assistant: InterviewAssistant, args: argparse.Namespace) -> int:
    assistant.set_chat_active(True)
    try:
        if args.no_stream:
            content = assistant.ask_blocking(args.prompt, args.image, transcript=args.transcript)
            sys.stdout.write(render_plain_text(content))
        else:
            asyncio.run(_ask_streaming(assistant, args))
            if assistant.content.errors:
                sys.stdout.write(render_plain_text(assistant.content))
        sys.stdout.write("\n")
    finally:
        assistant.shutdown()
    return 1 if assistant.content.errors else 0


def _run_sessions(sessions: ChatSessionService, limit: int) -> int:
    for session in sessions.list_saved_sessions()[:limit]:
        first = session.messages[0].content if session.messages else ""
        preview = first.replace("\n", " ")[:60]
        print(
            f"{session.created_at.astimezone():%Y-%m-%d %H:%M}  {session.id}  "
            f"{len(session.messages):>3} msg  {preview}"
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = resolve_app_settings(args.config)
    if args.command == "sessions":
        return _run_sessions(ChatSessionService(settings.saved_chats_dir, settings), args.limit)
    return _run_ask(build_assistant(settings), args)


if __name__ == "__main__":
    raise SystemExit(main())
