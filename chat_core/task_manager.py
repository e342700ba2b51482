"""Lifecycle tracking for the session's background asyncio tasks."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


class TaskManager:
    """Track the outstanding reply task and fire-and-forget notifications.

    Named tasks (the reply request) are looked up by name; anonymous tasks
    (event delivery) drop themselves from tracking when they finish.
    """

    def __init__(self) -> None:
        self._named: dict[str, asyncio.Task[Any]] = {}
        self._anonymous: set[asyncio.Task[Any]] = set()

    def add(self, task: asyncio.Task[Any], name: str | None = None) -> None:
        """Register a task, optionally under a unique name.

        A named task replaces any earlier task of the same name without
        cancelling it.
        """
        if name is not None:
            self._named[name] = task
            task.add_done_callback(self._log_failure)
        else:
            self._anonymous.add(task)
            task.add_done_callback(self._anonymous.discard)
            task.add_done_callback(self._log_failure)

    def spawn(self, coro: Any, name: str | None = None) -> asyncio.Task[Any]:
        """Schedule ``coro`` on the running loop and track the task."""
        task = asyncio.get_running_loop().create_task(coro)
        self.add(task, name=name)
        return task

    async def wait(self, name: str) -> None:
        """Await a named task without cancelling it."""
        task = self._named.get(name)
        if task is None or task.done():
            return
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    async def cancel_all(self) -> None:
        """Cancel every tracked task and await them all."""
        current = asyncio.current_task()
        all_tasks: list[asyncio.Task[Any]] = [
            task
            for task in list(self._named.values()) + list(self._anonymous)
            if task is not current
        ]
        for task in all_tasks:
            if not task.done():
                task.cancel()
        for task in all_tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:  # noqa: BLE001 - already reported by _log_failure.
                pass
        self._named.clear()
        self._anonymous.clear()

    @staticmethod
    def _log_failure(task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error(
                "task.failed",
                exc_info=exc,
                extra={"event": "task.failed", "task_name": task.get_name()},
            )
