"""Flicker-free "assistant is composing" signal derived from dispatch state."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging

from .state import DispatchState, StateManager

LOGGER = logging.getLogger(__name__)

DEFAULT_MIN_VISIBLE_MS = 800

ComposingListener = Callable[[bool], None]


class TypingIndicatorTimer:
    """Follow the dispatcher's SENDING state with a minimum visible duration.

    The indicator turns on as soon as the dispatcher enters SENDING. Once on,
    it stays on for at least ``min_visible_ms`` and turns off at the first
    moment the floor has elapsed and the dispatcher is no longer sending.
    """

    def __init__(
        self,
        state: StateManager,
        min_visible_ms: int = DEFAULT_MIN_VISIBLE_MS,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._state = state
        self.min_visible_seconds = max(0, min_visible_ms) / 1000.0
        self._loop = loop
        self._composing = False
        self._shown_at = 0.0
        self._handle: asyncio.TimerHandle | None = None
        # Bumped on every schedule and on dispose so stale callbacks are no-ops.
        self._generation = 0
        self._disposed = False
        self._listeners: list[ComposingListener] = []
        state.add_observer(self._on_transition)

    def is_composing(self) -> bool:
        return self._composing

    def add_listener(self, listener: ComposingListener) -> None:
        """Register ``listener(composing)`` called on every visible change."""
        self._listeners.append(listener)

    def dispose(self) -> None:
        """Stop the timer and detach from the dispatch state."""
        if self._disposed:
            return
        self._disposed = True
        self._generation += 1
        self._cancel_handle()
        self._state.remove_observer(self._on_transition)
        self._listeners.clear()
        self._composing = False

    def _now(self) -> float:
        return self._get_loop().time()

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _on_transition(self, old_state: DispatchState, new_state: DispatchState) -> None:
        if self._disposed:
            return
        if new_state is DispatchState.SENDING:
            self._cancel_handle()
            if not self._composing:
                self._shown_at = self._now()
                self._set_composing(True)
        elif new_state is DispatchState.IDLE and self._composing:
            remaining = self.min_visible_seconds - (self._now() - self._shown_at)
            if remaining <= 0:
                self._set_composing(False)
            else:
                self._schedule_hide(remaining)

    def _schedule_hide(self, delay: float) -> None:
        self._cancel_handle()
        self._generation += 1
        generation = self._generation
        self._handle = self._get_loop().call_later(
            delay, self._on_floor_elapsed, generation
        )

    def _on_floor_elapsed(self, generation: int) -> None:
        if self._disposed or generation != self._generation:
            return
        self._handle = None
        if self._state.is_sending:
            return
        self._set_composing(False)

    def _cancel_handle(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _set_composing(self, composing: bool) -> None:
        if composing == self._composing:
            return
        self._composing = composing
        LOGGER.debug(
            "typing.indicator.changed",
            extra={"event": "typing.indicator.changed", "composing": composing},
        )
        for listener in list(self._listeners):
            listener(composing)
