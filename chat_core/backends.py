"""Reply-generation backend adapters.

Every adapter implements ``generate_reply(session_id, text) -> Reply`` and
raises a ``ReplyBackendError`` subclass on failure. The dispatcher owns the
request timeout and never retries.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from ollama import AsyncClient as OllamaAsyncClient
from ollama import ResponseError as OllamaResponseError

from .config import BackendConfig
from .exceptions import ReplyBackendError, ReplyConnectionError
from .models import Reply

LOGGER = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.NetworkError,
    ConnectionError,
)


class HttpReplyBackend:
    """POST the user turn to a JSON chat endpoint and read back the reply."""

    def __init__(
        self,
        base_url: str,
        chat_path: str = "/chat",
        headers: dict[str, str] | None = None,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.chat_path = chat_path
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json", **(headers or {})},
            timeout=timeout,
        )

    async def generate_reply(self, session_id: str, text: str) -> Reply:
        try:
            response = await self._client.post(
                self.chat_path, json={"session_id": session_id, "message": text}
            )
        except _TRANSPORT_ERRORS as exc:
            raise ReplyConnectionError(
                f"Unable to reach reply service at {self.base_url}."
            ) from exc
        except httpx.HTTPError as exc:
            raise ReplyBackendError(f"Reply request failed: {exc}") from exc

        if response.is_error:
            raise ReplyBackendError(
                f"Reply service answered HTTP {response.status_code}."
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ReplyBackendError("Reply service returned invalid JSON.") from exc

        reply_text = None
        if isinstance(payload, dict):
            for key in ("reply", "replyText", "reply_text"):
                value = payload.get(key)
                if isinstance(value, str):
                    reply_text = value
                    break
        if reply_text is None:
            raise ReplyBackendError("Reply service response has no reply field.")
        return Reply(reply_text=reply_text)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class OllamaReplyBackend:
    """Generate replies with a local Ollama model (single non-streaming turn)."""

    def __init__(
        self,
        host: str,
        model: str,
        system_prompt: str = "",
        timeout: float = 15.0,
        client: Any | None = None,
    ) -> None:
        self.host = host
        self.model = model
        self.system_prompt = system_prompt
        self._client = client or OllamaAsyncClient(host=host, timeout=timeout)

    def _build_messages(self, text: str) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": text})
        return messages

    @staticmethod
    def _extract_content(response: Any) -> Any:
        message = getattr(response, "message", None)
        if message is None and isinstance(response, dict):
            message = response.get("message")
        if isinstance(message, dict):
            return message.get("content")
        return getattr(message, "content", None)

    async def generate_reply(self, session_id: str, text: str) -> Reply:
        try:
            response = await self._client.chat(
                model=self.model, messages=self._build_messages(text), stream=False
            )
        except _TRANSPORT_ERRORS as exc:
            raise ReplyConnectionError(
                f"Unable to connect to Ollama host {self.host}."
            ) from exc
        except OllamaResponseError as exc:
            raise ReplyBackendError(
                f"Ollama rejected the request for model {self.model!r}: {exc}"
            ) from exc

        content = self._extract_content(response)
        if not isinstance(content, str):
            raise ReplyBackendError("Ollama response carried no message content.")
        LOGGER.debug(
            "backend.ollama.reply",
            extra={
                "event": "backend.ollama.reply",
                "session_id": session_id,
                "model": self.model,
            },
        )
        return Reply(reply_text=content)


class StaticReplyBackend:
    """Answer every turn with the same text after a fixed delay (offline mode)."""

    def __init__(self, reply_text: str, delay_seconds: float = 0.8) -> None:
        self.reply_text = reply_text
        self.delay_seconds = max(0.0, delay_seconds)
        self.calls: list[tuple[str, str]] = []

    async def generate_reply(self, session_id: str, text: str) -> Reply:
        self.calls.append((session_id, text))
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        return Reply(reply_text=self.reply_text)


def build_backend(
    backend_config: BackendConfig, timeout_seconds: float = 15.0
) -> HttpReplyBackend | OllamaReplyBackend | StaticReplyBackend:
    """Create the adapter selected by the ``[backend]`` config section."""
    if backend_config.kind == "ollama":
        return OllamaReplyBackend(
            host=backend_config.ollama_host,
            model=backend_config.model,
            system_prompt=backend_config.system_prompt,
            timeout=timeout_seconds,
        )
    if backend_config.kind == "static":
        return StaticReplyBackend(
            reply_text=backend_config.static_reply,
            delay_seconds=backend_config.static_delay_ms / 1000.0,
        )
    return HttpReplyBackend(
        base_url=backend_config.base_url,
        chat_path=backend_config.chat_path,
        headers=backend_config.headers,
        timeout=timeout_seconds,
    )
