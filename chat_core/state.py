"""Reply dispatch state machine with observable transitions."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
import logging

LOGGER = logging.getLogger(__name__)


class DispatchState(str, Enum):
    """Finite state machine for the outstanding reply request."""

    IDLE = "IDLE"
    SENDING = "SENDING"
    RESOLVED = "RESOLVED"


StateObserver = Callable[[DispatchState, DispatchState], None]


class StateManager:
    """Hold the dispatch state and notify observers on every change.

    All transitions run on the session's event loop thread and never await,
    so the IDLE to SENDING check-then-set in ``transition_if`` cannot
    interleave with another submit.
    """

    def __init__(self) -> None:
        self._state = DispatchState.IDLE
        self._observers: list[StateObserver] = []

    @property
    def state(self) -> DispatchState:
        return self._state

    @property
    def is_sending(self) -> bool:
        return self._state is DispatchState.SENDING

    def add_observer(self, observer: StateObserver) -> None:
        """Register ``observer(old_state, new_state)`` for every transition."""
        self._observers.append(observer)

    def remove_observer(self, observer: StateObserver) -> None:
        try:
            self._observers.remove(observer)
        except ValueError:
            pass

    def transition_to(self, new_state: DispatchState) -> DispatchState:
        """Transition to a new state and return it."""
        old_state = self._state
        if old_state is new_state:
            return new_state
        self._state = new_state
        LOGGER.debug(
            "dispatch.state.transition",
            extra={
                "event": "dispatch.state.transition",
                "from_state": old_state.value,
                "to_state": new_state.value,
            },
        )
        for observer in list(self._observers):
            observer(old_state, new_state)
        return new_state

    def transition_if(
        self,
        expected_state: DispatchState,
        new_state: DispatchState,
    ) -> bool:
        """Transition only when current state matches expected state."""
        if self._state is not expected_state:
            return False
        self.transition_to(new_state)
        return True
