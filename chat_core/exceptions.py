"""Domain exception hierarchy for the conversational messaging core."""

from __future__ import annotations


class ChatCoreError(RuntimeError):
    """Base class for all domain-level chat errors."""


class InputValidationError(ChatCoreError):
    """Raised when raw user text may not enter the transcript."""

    reason = "invalid"


class EmptyInputError(InputValidationError):
    """Raised when the trimmed input is empty."""

    reason = "empty_input"


class TooLongError(InputValidationError):
    """Raised when the trimmed input exceeds the configured maximum length."""

    reason = "too_long"


class InappropriateInputError(InputValidationError):
    """Raised when the input matches the moderation predicate."""

    reason = "inappropriate"


class RequestInFlightError(ChatCoreError):
    """Raised when a reply is requested while another one is outstanding."""


class MessageContractError(ChatCoreError):
    """Base class for caller bugs against the message store contract."""


class InvalidMessageStateError(MessageContractError):
    """Raised when a message carries an illegal sender/status combination."""


class MessageNotFoundError(MessageContractError):
    """Raised when a message id is unknown to the store."""


class IllegalTransitionError(MessageContractError):
    """Raised when a status change is not reachable from the current status."""


class SessionClosedError(ChatCoreError):
    """Raised when a torn-down session is used again."""


class ReplyBackendError(ChatCoreError):
    """Raised when the reply-generation backend fails or answers malformed data."""


class ReplyConnectionError(ReplyBackendError):
    """Raised when the reply-generation backend cannot be reached."""


class ReplyTimeoutError(ReplyBackendError):
    """Raised when the reply-generation backend exceeds the request timeout."""


class ConfigValidationError(ChatCoreError):
    """Raised when configuration cannot be validated safely."""
