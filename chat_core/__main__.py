"""CLI entrypoint for chat-core: a line-based chat loop on the terminal."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Awaitable, Callable
from importlib import metadata
from pathlib import Path
from typing import Any, Sequence

from .backends import build_backend
from .config import (
    backend_settings,
    conversation_settings,
    load_config,
)
from .controller import ConversationController, SubmitOutcome
from .events import COMPOSING_CHANGED, MESSAGE_UPDATED, Event
from .logging_utils import configure_logging
from .models import MessageStatus

QUIT_COMMANDS = {"/quit", "/exit"}

_NOTICES = {
    SubmitOutcome.EMPTY_INPUT: "(type something first)",
    SubmitOutcome.TOO_LONG: "(that message is too long)",
    SubmitOutcome.INAPPROPRIATE: "(let's keep it friendly)",
    SubmitOutcome.INVALID_INPUT: "(that message can't be sent)",
    SubmitOutcome.REQUEST_IN_FLIGHT: "(still thinking about the last one)",
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chat-core", description="Terminal chat")
    parser.add_argument("--config", help="Path to a config.toml file")
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Answer with the static backend instead of the configured one",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    return parser


async def _read_stdin_line() -> str:
    return await asyncio.to_thread(input, "you> ")


async def run_chat(
    controller: ConversationController,
    read_line: Callable[[], Awaitable[str]] = _read_stdin_line,
    write: Callable[[str], None] = print,
) -> None:
    """Drive ``controller`` from ``read_line`` until EOF or a quit command."""

    def on_updated(event: Event) -> None:
        message = event.data["message"]
        if message.status is MessageStatus.FAILED:
            write(f"assistant [failed]> {message.text}")
        else:
            write(f"assistant> {message.text}")

    def on_composing(event: Event) -> None:
        if event.data["composing"]:
            write("assistant is typing...")

    controller.subscribe(MESSAGE_UPDATED, on_updated)
    controller.subscribe(COMPOSING_CHANGED, on_composing)
    try:
        while True:
            try:
                line = await read_line()
            except EOFError:
                break
            if line.strip().lower() in QUIT_COMMANDS:
                break
            outcome = await controller.submit(line)
            if outcome is SubmitOutcome.ACCEPTED:
                await controller.wait_for_reply()
            elif outcome in _NOTICES:
                write(_NOTICES[outcome])
    finally:
        await controller.dispose()


async def _run_with_backend(
    controller: ConversationController, backend: Any
) -> None:
    try:
        await run_chat(controller)
    finally:
        aclose = getattr(backend, "aclose", None)
        if aclose is not None:
            await aclose()


def main(argv: Sequence[str] | None = None) -> None:
    """Load configuration, configure logging and run the chat loop."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        try:
            version = metadata.version("chat-core")
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        print(f"chat-core {version}")
        return

    config = load_config(Path(args.config).expanduser() if args.config else None)
    configure_logging(config["logging"])

    settings = conversation_settings(config)
    backend_config = backend_settings(config)
    if args.offline:
        backend_config = backend_config.model_copy(update={"kind": "static"})
    backend = build_backend(backend_config, settings.request_timeout_seconds)
    controller = ConversationController(backend, settings=settings)

    try:
        asyncio.run(_run_with_backend(controller, backend))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
