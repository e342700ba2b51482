"""Root logger setup: JSON lines through structlog, or plain text."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import structlog

APP_LOGGER_PREFIX = "chat_core"
NOISY_LIBRARY_LOGGERS = ("httpx", "httpcore", "ollama")
PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _json_default(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if hasattr(value, "value"):
        return value.value
    return repr(value)


def build_formatter(structured: bool) -> logging.Formatter:
    """Return a JSON-lines formatter or the plain-text fallback.

    Structured output keeps the ``extra={...}`` fields of stdlib records, so
    ``LOGGER.info("x", extra={"event": "x", "session_id": ...})`` renders as
    one JSON object per line.
    """
    if not structured:
        return logging.Formatter(PLAIN_FORMAT)
    return structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(
            ensure_ascii=False, separators=(",", ":"), default=_json_default
        ),
        foreign_pre_chain=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.ExtraAdder(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
        ],
    )


def _only_app_records(record: logging.LogRecord) -> bool:
    return record.name.startswith(APP_LOGGER_PREFIX)


def _file_handler(path: Path, level: int, formatter: logging.Formatter) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    if os.name == "posix":
        try:
            path.chmod(0o600)
        except OSError:
            logging.getLogger(__name__).warning("Could not make %s private", path)
    return handler


def configure_logging(logging_config: dict[str, Any]) -> None:
    """Replace the root handlers according to the ``[logging]`` section."""
    level = getattr(logging, str(logging_config.get("level", "INFO")).upper(), logging.INFO)
    formatter = build_formatter(bool(logging_config.get("structured", True)))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    # The terminal is shared with the chat transcript; keep it to warnings.
    console = logging.StreamHandler()
    console.setLevel(max(level, logging.WARNING))
    console.setFormatter(formatter)
    console.addFilter(_only_app_records)
    root.addHandler(console)

    if logging_config.get("log_to_file", False):
        path = Path(
            str(logging_config.get("log_file_path", "~/.local/state/chat-core/app.log"))
        ).expanduser()
        root.addHandler(_file_handler(path, level, formatter))

    for name in NOISY_LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
