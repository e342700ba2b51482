"""Configuration loading and validation for the conversation core."""

from __future__ import annotations

from copy import deepcopy
import logging
import os
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from .dispatcher import DEFAULT_FALLBACK_TEXT
from .exceptions import ConfigValidationError
from .typing_indicator import DEFAULT_MIN_VISIBLE_MS
from .validator import DEFAULT_MAX_LEN

import tomllib

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "chat-core"
CONFIG_PATH = CONFIG_DIR / "config.toml"

VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _validate_http_url(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string.")
    normalized = value.strip().rstrip("/")
    parsed = urlparse(normalized)
    if parsed.scheme.lower() not in {"http", "https"}:
        raise ValueError(f"{field_name} must use http or https scheme.")
    if not (parsed.hostname or "").strip():
        raise ValueError(f"{field_name} must include a hostname.")
    return normalized


class ConversationSettings(BaseModel):
    """Limits and timings for one conversation session."""

    max_len: int = Field(default=DEFAULT_MAX_LEN, ge=1, le=100_000)
    min_visible_ms: int = Field(default=DEFAULT_MIN_VISIBLE_MS, ge=0, le=60_000)
    request_timeout_ms: int = Field(default=15_000, ge=1, le=600_000)
    denylist: list[str] = Field(default_factory=list)
    fallback_text: str = DEFAULT_FALLBACK_TEXT

    @field_validator("denylist", mode="before")
    @classmethod
    def _validate_denylist(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("denylist must be a list of strings.")
        # Terms are kept as written; only blank entries and repeats are dropped.
        terms: list[str] = []
        seen: set[str] = set()
        for item in value:
            if not isinstance(item, str):
                raise ValueError("denylist entries must be strings.")
            if item.strip() and item.lower() not in seen:
                seen.add(item.lower())
                terms.append(item)
        return terms

    @field_validator("fallback_text", mode="before")
    @classmethod
    def _validate_fallback_text(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("fallback_text must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("fallback_text must not be empty.")
        return normalized

    @property
    def request_timeout_seconds(self) -> float:
        return self.request_timeout_ms / 1000.0


class BackendConfig(BaseModel):
    """Reply-generation backend selection and endpoints."""

    kind: Literal["http", "ollama", "static"] = "http"
    base_url: str = "http://localhost:8000"
    chat_path: str = "/chat"
    headers: dict[str, str] = Field(default_factory=dict)
    ollama_host: str = "http://localhost:11434"
    model: str = "llama3.2"
    system_prompt: str = "You are a friendly, encouraging assistant."
    static_reply: str = "That's so cool! Tell me more."
    static_delay_ms: int = Field(default=800, ge=0, le=60_000)

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("kind must be a string.")
        return value.strip().lower()

    @field_validator("base_url", mode="before")
    @classmethod
    def _validate_base_url(cls, value: Any) -> str:
        return _validate_http_url(value, "base_url")

    @field_validator("ollama_host", mode="before")
    @classmethod
    def _validate_ollama_host(cls, value: Any) -> str:
        return _validate_http_url(value, "ollama_host")

    @field_validator("chat_path", mode="before")
    @classmethod
    def _validate_chat_path(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("chat_path must be a string.")
        normalized = value.strip()
        if not normalized.startswith("/"):
            normalized = "/" + normalized
        return normalized

    @field_validator("model", "static_reply", mode="before")
    @classmethod
    def _validate_required_string(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Expected a string value.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("String value must not be empty.")
        return normalized

    @field_validator("system_prompt", mode="before")
    @classmethod
    def _normalize_prompt(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Expected a string value.")
        return value.strip()


class LoggingConfig(BaseModel):
    """Where log records go and how they are rendered."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = "~/.local/state/chat-core/app.log"

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("level must be a string.")
        level = value.strip().upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"Unknown log level {level!r}.")
        return level

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _non_blank_path(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("log_file_path must be a non-empty string.")
        return value.strip()


class Config(BaseModel):
    """Top-level config.toml document."""

    model_config = ConfigDict(populate_by_name=True)
    conversation: ConversationSettings = ConversationSettings()
    backend: BackendConfig = BackendConfig()
    logging: LoggingConfig = LoggingConfig()


DEFAULT_CONFIG: dict[str, dict[str, Any]] = Config().model_dump()


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Create the config directory if needed; failures are only logged."""
    target = config_dir or CONFIG_DIR
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning(
            "config.dir_unavailable",
            extra={
                "event": "config.dir_unavailable",
                "path": str(target),
                "reason": str(exc),
            },
        )
    return target


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Overlay ``override`` on ``base`` table by table; ``base`` is not mutated."""
    result: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = _deep_merge(current, value)
        else:
            result[key] = value
    return result


def _restrict_to_owner(path: Path) -> None:
    if os.name != "posix" or not path.exists():
        return
    try:
        path.chmod(0o600)
    except OSError as exc:
        LOGGER.warning(
            "config.chmod_failed",
            extra={
                "event": "config.chmod_failed",
                "path": str(path),
                "reason": str(exc),
            },
        )


def _validate_config(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Return validated config data, or the defaults if ``raw`` is rejected."""
    try:
        return Config.model_validate(raw).model_dump()
    except ValidationError as exc:
        LOGGER.warning(
            "config.invalid",
            extra={"event": "config.invalid", "reason": str(exc)},
        )
        return deepcopy(DEFAULT_CONFIG)
    except Exception as exc:  # noqa: BLE001 - anything else is a programming error.
        raise ConfigValidationError(f"Config could not be built: {exc}") from exc


def _read_toml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    _restrict_to_owner(path)
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (tomllib.TOMLDecodeError, OSError, UnicodeDecodeError) as exc:
        LOGGER.warning(
            "config.parse_failed",
            extra={
                "event": "config.parse_failed",
                "path": str(path),
                "reason": str(exc),
            },
        )
        return {}


def load_config(config_path: Path | None = None) -> dict[str, dict[str, Any]]:
    """Read config.toml over the defaults and validate the result.

    A missing, unreadable or invalid file yields the defaults. Pass
    ``config_path`` to read somewhere other than ``CONFIG_PATH``.
    """
    path = config_path or CONFIG_PATH
    ensure_config_dir(path.parent)
    return _validate_config(_deep_merge(DEFAULT_CONFIG, _read_toml(path)))


def conversation_settings(config: dict[str, Any]) -> ConversationSettings:
    """Typed ``[conversation]`` section of a loaded config dict."""
    return ConversationSettings.model_validate(config.get("conversation", {}))


def backend_settings(config: dict[str, Any]) -> BackendConfig:
    """Typed ``[backend]`` section of a loaded config dict."""
    return BackendConfig.model_validate(config.get("backend", {}))
