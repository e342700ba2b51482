"""Immutable transcript records shared by the store, dispatcher and UI."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
import itertools
import time
import uuid


class Sender(str, Enum):
    """Party that authored a message."""

    USER = "USER"
    ASSISTANT = "ASSISTANT"


class MessageStatus(str, Enum):
    """Delivery status of a transcript entry."""

    PENDING = "PENDING"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not MessageStatus.PENDING


_id_counter = itertools.count(1)
_last_timestamp = 0.0


def new_message_id() -> str:
    """Return a process-unique message id that is never reused."""
    return f"msg-{next(_id_counter)}-{uuid.uuid4().hex[:8]}"


def _monotonic_timestamp() -> float:
    # Wall-clock time clamped so created_at never goes backwards.
    global _last_timestamp
    now = time.time()
    if now < _last_timestamp:
        now = _last_timestamp
    _last_timestamp = now
    return now


@dataclass(frozen=True)
class Message:
    """One entry in a conversation transcript."""

    id: str
    text: str
    sender: Sender
    status: MessageStatus
    created_at: float

    @classmethod
    def create(
        cls,
        text: str,
        sender: Sender,
        status: MessageStatus,
    ) -> Message:
        """Build a message with a fresh id and creation timestamp."""
        return cls(
            id=new_message_id(),
            text=text,
            sender=sender,
            status=status,
            created_at=_monotonic_timestamp(),
        )

    def with_status(self, status: MessageStatus, text: str | None = None) -> Message:
        """Return a copy carrying a new status and, optionally, new text."""
        if text is None:
            return replace(self, status=status)
        return replace(self, status=status, text=text)

    def to_dict(self) -> dict[str, str | float]:
        return {
            "id": self.id,
            "text": self.text,
            "sender": self.sender.value,
            "status": self.status.value,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class Reply:
    """Successful answer from the reply-generation backend."""

    reply_text: str
