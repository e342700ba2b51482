"""Append-only transcript storage for a single conversation session."""

from __future__ import annotations

from .exceptions import (
    IllegalTransitionError,
    InvalidMessageStateError,
    MessageNotFoundError,
)
from .models import Message, MessageStatus, Sender


class MessageStore:
    """Ordered, append-only message log.

    Display order is append order. Entries are immutable ``Message`` records;
    a status update swaps the record at its existing position.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []
        self._index: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._messages)

    def append(self, message: Message) -> str:
        """Append a message and return its id."""
        if (
            message.sender is Sender.USER
            and message.status is not MessageStatus.DELIVERED
        ):
            raise InvalidMessageStateError(
                f"User messages are DELIVERED on append, not {message.status.value}."
            )
        if message.id in self._index:
            raise InvalidMessageStateError(
                f"Message id {message.id!r} is already in the transcript."
            )
        self._index[message.id] = len(self._messages)
        self._messages.append(message)
        return message.id

    def update_status(
        self,
        message_id: str,
        new_status: MessageStatus,
        new_text: str | None = None,
    ) -> Message:
        """Move a PENDING message to a terminal status in place."""
        position = self._index.get(message_id)
        if position is None:
            raise MessageNotFoundError(f"No message with id {message_id!r}.")
        current = self._messages[position]
        # Only PENDING entries move, and only to DELIVERED or FAILED.
        if current.status.is_terminal or not new_status.is_terminal:
            raise IllegalTransitionError(
                f"Cannot move message {message_id!r} from "
                f"{current.status.value} to {new_status.value}."
            )
        updated = current.with_status(new_status, new_text)
        self._messages[position] = updated
        return updated

    def snapshot(self) -> tuple[Message, ...]:
        """Return an immutable view of the transcript in append order."""
        return tuple(self._messages)

    def clear(self) -> None:
        """Discard every message; used only when the owning session is torn down."""
        self._messages = []
        self._index = {}
