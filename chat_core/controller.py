"""Facade the rendering layer drives: submit, snapshot, composing, dispose."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
import logging
from typing import Any

from .config import ConversationSettings, conversation_settings
from .dispatcher import ReplyBackend, ReplyDispatcher
from .events import (
    COMPOSING_CHANGED,
    INPUT_REJECTED,
    MESSAGE_APPENDED,
    SESSION_DISPOSED,
    EventBus,
)
from .exceptions import (
    EmptyInputError,
    InappropriateInputError,
    InputValidationError,
    RequestInFlightError,
    TooLongError,
)
from .models import Message
from .session import SessionManager
from .task_manager import TaskManager
from .typing_indicator import TypingIndicatorTimer
from .validator import InputValidator, ModerationPredicate

LOGGER = logging.getLogger(__name__)

REPLY_TASK_NAME = "reply"


class SubmitOutcome(str, Enum):
    """What happened to a submitted line of text."""

    ACCEPTED = "ACCEPTED"
    EMPTY_INPUT = "EMPTY_INPUT"
    TOO_LONG = "TOO_LONG"
    INAPPROPRIATE = "INAPPROPRIATE"
    INVALID_INPUT = "INVALID_INPUT"
    REQUEST_IN_FLIGHT = "REQUEST_IN_FLIGHT"
    DISPOSED = "DISPOSED"


_VALIDATION_OUTCOMES: dict[type[InputValidationError], SubmitOutcome] = {
    EmptyInputError: SubmitOutcome.EMPTY_INPUT,
    TooLongError: SubmitOutcome.TOO_LONG,
    InappropriateInputError: SubmitOutcome.INAPPROPRIATE,
}


def _validation_outcome(exc: InputValidationError) -> SubmitOutcome:
    """Map a validation error, or its nearest known base, to an outcome."""
    for cls in type(exc).__mro__:
        if cls in _VALIDATION_OUTCOMES:
            return _VALIDATION_OUTCOMES[cls]
    return SubmitOutcome.INVALID_INPUT


class ConversationController:
    """Own one conversation session and expose it read-only to the UI.

    ``submit`` validates the text, performs the optimistic echo and starts the
    reply request as a tracked background task; it never raises for bad input,
    an in-flight request or a backend failure. Subscribers receive immutable
    ``Message`` records through the event bus.
    """

    def __init__(
        self,
        backend: ReplyBackend,
        settings: ConversationSettings | None = None,
        is_inappropriate: ModerationPredicate | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.settings = settings or ConversationSettings()
        self.backend = backend
        self.validator = InputValidator(
            max_len=self.settings.max_len,
            denylist=self.settings.denylist,
            is_inappropriate=is_inappropriate,
        )
        self._bus = bus or EventBus()
        self._sessions = SessionManager()
        self._tasks = TaskManager()
        self._dispatcher: ReplyDispatcher | None = None
        self._typing: TypingIndicatorTimer | None = None
        self._disposed = False

    @classmethod
    def from_config(
        cls,
        config: dict[str, Any],
        backend: ReplyBackend,
        is_inappropriate: ModerationPredicate | None = None,
    ) -> ConversationController:
        """Build a controller from a dict returned by ``load_config``."""
        return cls(
            backend,
            settings=conversation_settings(config),
            is_inappropriate=is_inappropriate,
        )

    async def __aenter__(self) -> ConversationController:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def session_id(self) -> str | None:
        """Return the session id, creating the session on first use."""
        if self._disposed:
            return None
        return self._ensure_dispatcher().session.id

    @property
    def has_in_flight_request(self) -> bool:
        if self._dispatcher is None or self._disposed:
            return False
        return self._dispatcher.session.has_in_flight_request

    def subscribe(self, event_name: str, handler: Callable) -> None:
        """Register a plain or async handler for a transcript event."""
        self._bus.subscribe(event_name, handler)

    def unsubscribe(self, event_name: str, handler: Callable) -> None:
        self._bus.unsubscribe(event_name, handler)

    async def submit(self, raw_text: str) -> SubmitOutcome:
        """Validate ``raw_text`` and, when accepted, start a reply request."""
        if self._disposed:
            return SubmitOutcome.DISPOSED
        dispatcher = self._ensure_dispatcher()
        session_id = dispatcher.session.id

        try:
            text = self.validator.validate(raw_text)
        except InputValidationError as exc:
            outcome = _validation_outcome(exc)
            await self._reject(outcome, exc.reason, session_id)
            return outcome

        try:
            pending = dispatcher.begin(text)
        except RequestInFlightError:
            await self._reject(
                SubmitOutcome.REQUEST_IN_FLIGHT, "request_in_flight", session_id
            )
            return SubmitOutcome.REQUEST_IN_FLIGHT

        for message in (pending.user_message, pending.placeholder):
            await self._bus.publish(
                MESSAGE_APPENDED,
                {"message": message, "session_id": session_id},
                source="controller",
            )

        # A subscriber may have disposed the controller while being notified.
        if not self._disposed:
            self._tasks.spawn(dispatcher.resolve(pending), name=REPLY_TASK_NAME)
        return SubmitOutcome.ACCEPTED

    def get_snapshot(self) -> tuple[Message, ...]:
        """Return the transcript in append order."""
        if self._disposed or self._dispatcher is None:
            return ()
        return self._dispatcher.session.messages

    def is_composing(self) -> bool:
        if self._disposed or self._typing is None:
            return False
        return self._typing.is_composing()

    async def wait_for_reply(self) -> None:
        """Wait for the outstanding reply, if any, without cancelling it."""
        await self._tasks.wait(REPLY_TASK_NAME)

    async def dispose(self) -> None:
        """Cancel the in-flight request, stop the timer and drop the session.

        Safe to call any number of times.
        """
        if self._disposed:
            return
        self._disposed = True

        if self._typing is not None:
            self._typing.dispose()
        if self._dispatcher is not None:
            self._dispatcher.cancel()
        session_id = self._sessions.teardown()
        await self._tasks.cancel_all()

        if session_id is not None:
            await self._bus.publish(
                SESSION_DISPOSED, {"session_id": session_id}, source="controller"
            )
        self._bus.clear()
        self._dispatcher = None
        self._typing = None

    def _ensure_dispatcher(self) -> ReplyDispatcher:
        if self._dispatcher is None:
            session = self._sessions.ensure_session()
            self._dispatcher = ReplyDispatcher(
                session,
                self.backend,
                timeout_seconds=self.settings.request_timeout_seconds,
                fallback_text=self.settings.fallback_text,
                bus=self._bus,
            )
            self._typing = TypingIndicatorTimer(
                session.dispatch_state, min_visible_ms=self.settings.min_visible_ms
            )
            self._typing.add_listener(self._on_composing_changed)
        return self._dispatcher

    def _on_composing_changed(self, composing: bool) -> None:
        if self._dispatcher is None:
            return
        self._tasks.spawn(
            self._bus.publish(
                COMPOSING_CHANGED,
                {"composing": composing, "session_id": self._dispatcher.session.id},
                source="typing_indicator",
            )
        )

    async def _reject(
        self, outcome: SubmitOutcome, reason: str, session_id: str
    ) -> None:
        LOGGER.info(
            "input.rejected",
            extra={
                "event": "input.rejected",
                "session_id": session_id,
                "outcome": outcome.value,
                "reason": reason,
            },
        )
        await self._bus.publish(
            INPUT_REJECTED,
            {"outcome": outcome, "reason": reason, "session_id": session_id},
            source="controller",
        )
