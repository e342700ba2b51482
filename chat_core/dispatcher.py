"""Single-flight reply dispatch against the reply-generation backend."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
import logging
import time
from typing import Any, Protocol, runtime_checkable

from .events import MESSAGE_UPDATED, EventBus
from .exceptions import ReplyBackendError, ReplyTimeoutError, RequestInFlightError
from .models import Message, MessageStatus, Reply, Sender
from .session import Session
from .state import DispatchState

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_FALLBACK_TEXT = "Sorry, I couldn't answer that right now. Please try again."


@runtime_checkable
class ReplyBackend(Protocol):
    """Reply-generation collaborator contract."""

    async def generate_reply(self, session_id: str, text: str) -> Reply:
        """Return the assistant reply for ``text`` or raise."""
        ...


@dataclass
class PendingReply:
    """Bookkeeping for the one outstanding request."""

    session_id: str
    text: str
    user_message: Message
    placeholder: Message
    started_at: float
    cancelled: bool = False


class ReplyDispatcher:
    """Send validated user text to the backend, one request at a time.

    ``begin`` performs the optimistic echo synchronously: the USER message and
    a PENDING assistant placeholder are appended before the backend is called,
    so a reply can never precede the message that triggered it. ``resolve``
    awaits the backend and folds the outcome into the placeholder. Failures
    are terminal; the user retries with a fresh submit.
    """

    def __init__(
        self,
        session: Session,
        backend: ReplyBackend,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        fallback_text: str = DEFAULT_FALLBACK_TEXT,
        bus: EventBus | None = None,
    ) -> None:
        self.session = session
        self.backend = backend
        self.timeout_seconds = timeout_seconds
        self.fallback_text = fallback_text
        self._bus = bus
        self._pending: PendingReply | None = None

    @property
    def state(self) -> DispatchState:
        return self.session.dispatch_state.state

    def begin(self, text: str) -> PendingReply:
        """Enter SENDING, then append the user echo and the placeholder."""
        state = self.session.dispatch_state
        if not state.transition_if(DispatchState.IDLE, DispatchState.SENDING):
            LOGGER.info(
                "dispatch.rejected",
                extra={
                    "event": "dispatch.rejected",
                    "session_id": self.session.id,
                    "state": self.state.value,
                },
            )
            raise RequestInFlightError("A reply is already being generated.")

        store = self.session.store
        user_message = Message.create(text, Sender.USER, MessageStatus.DELIVERED)
        store.append(user_message)
        placeholder = Message.create("", Sender.ASSISTANT, MessageStatus.PENDING)
        store.append(placeholder)

        pending = PendingReply(
            session_id=self.session.id,
            text=text,
            user_message=user_message,
            placeholder=placeholder,
            started_at=time.monotonic(),
        )
        self._pending = pending
        return pending

    async def resolve(self, pending: PendingReply) -> Message | None:
        """Await the backend once and apply the result unless cancelled.

        Returns the updated placeholder, or ``None`` when the request was
        cancelled and its result discarded.
        """
        LOGGER.info(
            "dispatch.request.start",
            extra={
                "event": "dispatch.request.start",
                "session_id": pending.session_id,
                "placeholder_id": pending.placeholder.id,
                "chars": len(pending.text),
            },
        )
        reply_text: str | None = None
        error: BaseException | None = None
        try:
            reply = await asyncio.wait_for(
                self.backend.generate_reply(pending.session_id, pending.text),
                timeout=self.timeout_seconds,
            )
            reply_text = self._extract_reply_text(reply)
        except asyncio.CancelledError:
            if not pending.cancelled:
                await self._apply(pending, None, ReplyBackendError("Request cancelled."))
            raise
        except asyncio.TimeoutError:
            error = ReplyTimeoutError(
                f"No reply within {self.timeout_seconds:g} seconds."
            )
        except Exception as exc:  # noqa: BLE001 - every backend failure becomes a FAILED turn.
            error = exc

        return await self._apply(pending, reply_text, error)

    async def submit(self, text: str) -> Message | None:
        """Run a full request: ``begin`` then ``resolve``."""
        pending = self.begin(text)
        return await self.resolve(pending)

    def cancel(self) -> bool:
        """Abandon the outstanding request; its eventual result is discarded."""
        pending = self._pending
        if pending is None:
            return False
        pending.cancelled = True
        self._pending = None
        self.session.dispatch_state.transition_to(DispatchState.IDLE)
        LOGGER.info(
            "dispatch.request.cancelled",
            extra={
                "event": "dispatch.request.cancelled",
                "session_id": pending.session_id,
                "placeholder_id": pending.placeholder.id,
            },
        )
        return True

    async def _apply(
        self,
        pending: PendingReply,
        reply_text: str | None,
        error: BaseException | None,
    ) -> Message | None:
        if pending.cancelled or pending is not self._pending:
            LOGGER.info(
                "dispatch.request.discarded",
                extra={
                    "event": "dispatch.request.discarded",
                    "session_id": pending.session_id,
                    "placeholder_id": pending.placeholder.id,
                },
            )
            return None

        elapsed_ms = int((time.monotonic() - pending.started_at) * 1000)
        store = self.session.store
        if error is None and reply_text is not None:
            updated = store.update_status(
                pending.placeholder.id, MessageStatus.DELIVERED, reply_text
            )
            LOGGER.info(
                "dispatch.request.delivered",
                extra={
                    "event": "dispatch.request.delivered",
                    "session_id": pending.session_id,
                    "placeholder_id": pending.placeholder.id,
                    "elapsed_ms": elapsed_ms,
                },
            )
        else:
            updated = store.update_status(
                pending.placeholder.id, MessageStatus.FAILED, self.fallback_text
            )
            LOGGER.warning(
                "dispatch.request.failed",
                extra={
                    "event": "dispatch.request.failed",
                    "session_id": pending.session_id,
                    "placeholder_id": pending.placeholder.id,
                    "elapsed_ms": elapsed_ms,
                    "error_type": type(error).__name__,
                    "reason": str(error),
                },
            )

        self._pending = None
        state = self.session.dispatch_state
        state.transition_to(DispatchState.RESOLVED)
        state.transition_to(DispatchState.IDLE)

        if self._bus is not None:
            await self._bus.publish(
                MESSAGE_UPDATED,
                {"message": updated, "session_id": pending.session_id},
                source="dispatcher",
            )
        return updated

    @staticmethod
    def _extract_reply_text(reply: Any) -> str:
        text: Any = None
        if isinstance(reply, Reply):
            text = reply.reply_text
        elif isinstance(reply, Mapping):
            for key in ("reply_text", "replyText"):
                if key in reply:
                    text = reply[key]
                    break
        else:
            text = getattr(reply, "reply_text", None)

        if not isinstance(text, str):
            raise ReplyBackendError("Backend returned no reply text.")
        if not text.strip():
            raise ReplyBackendError("Backend returned a blank reply.")
        return text
