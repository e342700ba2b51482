"""Conversation session lifecycle."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import uuid

from .exceptions import SessionClosedError
from .message_store import MessageStore
from .models import Message
from .state import StateManager

LOGGER = logging.getLogger(__name__)


@dataclass
class Session:
    """State container for one conversation."""

    id: str
    store: MessageStore = field(default_factory=MessageStore)
    dispatch_state: StateManager = field(default_factory=StateManager)

    @property
    def messages(self) -> tuple[Message, ...]:
        return self.store.snapshot()

    @property
    def has_in_flight_request(self) -> bool:
        return self.dispatch_state.is_sending


class SessionManager:
    """Create the single session a controller owns and tear it down once.

    The session is created lazily on first access. After ``teardown`` the
    manager is closed for good and no new session identity is issued.
    """

    def __init__(self) -> None:
        self._session: Session | None = None
        self._closed = False

    def ensure_session(self) -> Session:
        """Return the active session, creating it on first use."""
        if self._closed:
            raise SessionClosedError("The conversation session has been torn down.")
        if self._session is None:
            self._session = Session(id=uuid.uuid4().hex)
            LOGGER.info(
                "session.created",
                extra={"event": "session.created", "session_id": self._session.id},
            )
        return self._session

    def teardown(self) -> str | None:
        """Discard all session state; return the id of the discarded session."""
        if self._closed:
            return None
        self._closed = True
        session, self._session = self._session, None
        if session is None:
            return None
        session.store.clear()
        LOGGER.info(
            "session.disposed",
            extra={"event": "session.disposed", "session_id": session.id},
        )
        return session.id
