"""Top-level package for chat-core."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .backends import HttpReplyBackend, OllamaReplyBackend, StaticReplyBackend
    from .config import ensure_config_dir, load_config
    from .controller import ConversationController, SubmitOutcome
    from .dispatcher import ReplyBackend, ReplyDispatcher
    from .exceptions import (
        ChatCoreError,
        ConfigValidationError,
        IllegalTransitionError,
        InputValidationError,
        InvalidMessageStateError,
        MessageNotFoundError,
        ReplyBackendError,
        RequestInFlightError,
    )
    from .message_store import MessageStore
    from .models import Message, MessageStatus, Reply, Sender
    from .state import DispatchState, StateManager
    from .validator import InputValidator

_EXPORTS: dict[str, str] = {
    "HttpReplyBackend": ".backends",
    "OllamaReplyBackend": ".backends",
    "StaticReplyBackend": ".backends",
    "ensure_config_dir": ".config",
    "load_config": ".config",
    "ConversationController": ".controller",
    "SubmitOutcome": ".controller",
    "ReplyBackend": ".dispatcher",
    "ReplyDispatcher": ".dispatcher",
    "ChatCoreError": ".exceptions",
    "ConfigValidationError": ".exceptions",
    "IllegalTransitionError": ".exceptions",
    "InputValidationError": ".exceptions",
    "InvalidMessageStateError": ".exceptions",
    "MessageNotFoundError": ".exceptions",
    "ReplyBackendError": ".exceptions",
    "RequestInFlightError": ".exceptions",
    "MessageStore": ".message_store",
    "Message": ".models",
    "MessageStatus": ".models",
    "Reply": ".models",
    "Sender": ".models",
    "DispatchState": ".state",
    "StateManager": ".state",
    "InputValidator": ".validator",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    """Lazily import symbols so backend client libraries load only when used."""
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    from importlib import import_module

    return getattr(import_module(module_name, __name__), name)
