"""Tests for single-flight reply dispatch."""

from __future__ import annotations

import asyncio
import unittest

from chat_core.dispatcher import DEFAULT_FALLBACK_TEXT, ReplyBackend, ReplyDispatcher
from chat_core.events import MESSAGE_UPDATED, Event, EventBus
from chat_core.exceptions import RequestInFlightError
from chat_core.models import MessageStatus, Reply, Sender
from chat_core.session import Session
from chat_core.state import DispatchState


class FakeBackend:
    """Backend whose replies are resolved by the test."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.futures: list[asyncio.Future] = []

    async def generate_reply(self, session_id: str, text: str) -> Reply:
        self.calls.append((session_id, text))
        future = asyncio.get_running_loop().create_future()
        self.futures.append(future)
        return await future

    def reply(self, text: str) -> None:
        self.futures[-1].set_result(Reply(reply_text=text))

    def fail(self, exc: BaseException) -> None:
        self.futures[-1].set_exception(exc)


class SlowBackend:
    async def generate_reply(self, session_id: str, text: str) -> Reply:
        await asyncio.sleep(10)
        return Reply(reply_text="too late")


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def _statuses(session: Session) -> list[tuple[Sender, str, MessageStatus]]:
    return [(m.sender, m.text, m.status) for m in session.store.snapshot()]


class ReplyDispatcherTests(unittest.IsolatedAsyncioTestCase):
    """Validate the IDLE/SENDING state machine and its effect on the store."""

    def setUp(self) -> None:
        self.session = Session(id="session-1")
        self.backend = FakeBackend()
        self.dispatcher = ReplyDispatcher(self.session, self.backend)

    def test_fake_backend_satisfies_protocol(self) -> None:
        self.assertIsInstance(self.backend, ReplyBackend)

    async def test_begin_appends_echo_and_placeholder(self) -> None:
        pending = self.dispatcher.begin("Hi!")

        self.assertEqual(
            _statuses(self.session),
            [
                (Sender.USER, "Hi!", MessageStatus.DELIVERED),
                (Sender.ASSISTANT, "", MessageStatus.PENDING),
            ],
        )
        self.assertEqual(self.dispatcher.state, DispatchState.SENDING)
        self.assertEqual(pending.placeholder.id, self.session.store.snapshot()[1].id)
        # The backend is not contacted until resolve runs.
        self.assertEqual(self.backend.calls, [])

    async def test_second_begin_while_sending_is_rejected(self) -> None:
        self.dispatcher.begin("ok")
        before = self.session.store.snapshot()

        with self.assertRaises(RequestInFlightError):
            self.dispatcher.begin("again")

        self.assertEqual(self.session.store.snapshot(), before)
        self.assertEqual(self.dispatcher.state, DispatchState.SENDING)

    async def test_success_delivers_reply_and_returns_to_idle(self) -> None:
        pending = self.dispatcher.begin("Hi!")
        task = asyncio.create_task(self.dispatcher.resolve(pending))
        await _settle()
        self.assertEqual(self.backend.calls, [("session-1", "Hi!")])

        self.backend.reply("Hello!")
        updated = await task

        self.assertIsNotNone(updated)
        self.assertEqual(updated.status, MessageStatus.DELIVERED)
        self.assertEqual(
            _statuses(self.session),
            [
                (Sender.USER, "Hi!", MessageStatus.DELIVERED),
                (Sender.ASSISTANT, "Hello!", MessageStatus.DELIVERED),
            ],
        )
        self.assertEqual(self.dispatcher.state, DispatchState.IDLE)
        # Nothing is left to cancel once the turn has resolved.
        self.assertFalse(self.dispatcher.cancel())

    async def test_failure_uses_fallback_and_logs_cause(self) -> None:
        pending = self.dispatcher.begin("ok")
        task = asyncio.create_task(self.dispatcher.resolve(pending))
        await _settle()

        with self.assertLogs("chat_core.dispatcher", level="WARNING") as logs:
            self.backend.fail(ConnectionError("socket exploded at 10.0.0.1"))
            updated = await task

        self.assertEqual(updated.status, MessageStatus.FAILED)
        self.assertEqual(updated.text, DEFAULT_FALLBACK_TEXT)
        self.assertNotIn("socket", updated.text)
        self.assertTrue(any("dispatch.request.failed" in line for line in logs.output))
        self.assertEqual(self.dispatcher.state, DispatchState.IDLE)

    async def test_failed_turn_allows_a_fresh_submit(self) -> None:
        pending = self.dispatcher.begin("ok")
        task = asyncio.create_task(self.dispatcher.resolve(pending))
        await _settle()
        self.backend.fail(RuntimeError("boom"))
        await task

        self.dispatcher.begin("ok")
        self.assertEqual(self.dispatcher.state, DispatchState.SENDING)
        self.assertEqual(len(self.session.store.snapshot()), 4)

    async def test_timeout_is_a_failure(self) -> None:
        dispatcher = ReplyDispatcher(
            self.session, SlowBackend(), timeout_seconds=0.01, fallback_text="Try again"
        )
        updated = await dispatcher.submit("hello")
        self.assertEqual(updated.status, MessageStatus.FAILED)
        self.assertEqual(updated.text, "Try again")
        self.assertEqual(dispatcher.state, DispatchState.IDLE)

    async def test_blank_reply_is_a_failure(self) -> None:
        pending = self.dispatcher.begin("hi")
        task = asyncio.create_task(self.dispatcher.resolve(pending))
        await _settle()
        self.backend.reply("   ")
        updated = await task
        self.assertEqual(updated.status, MessageStatus.FAILED)

    async def test_mapping_reply_is_accepted(self) -> None:
        class DictBackend:
            async def generate_reply(self, session_id: str, text: str) -> dict:
                return {"replyText": f"echo {text}"}

        dispatcher = ReplyDispatcher(self.session, DictBackend())
        updated = await dispatcher.submit("x")
        self.assertEqual(updated.status, MessageStatus.DELIVERED)
        self.assertEqual(updated.text, "echo x")

    async def test_resolution_after_cancel_is_discarded(self) -> None:
        pending = self.dispatcher.begin("ok")
        task = asyncio.create_task(self.dispatcher.resolve(pending))
        await _settle()

        self.assertTrue(self.dispatcher.cancel())
        self.assertEqual(self.dispatcher.state, DispatchState.IDLE)
        before = self.session.store.snapshot()

        self.backend.reply("zombie")
        result = await task

        self.assertIsNone(result)
        self.assertEqual(self.session.store.snapshot(), before)
        self.assertEqual(before[1].status, MessageStatus.PENDING)

    async def test_failure_after_cancel_is_discarded(self) -> None:
        pending = self.dispatcher.begin("ok")
        task = asyncio.create_task(self.dispatcher.resolve(pending))
        await _settle()
        self.dispatcher.cancel()

        self.backend.fail(RuntimeError("late"))
        self.assertIsNone(await task)
        self.assertEqual(self.session.store.snapshot()[1].status, MessageStatus.PENDING)

    async def test_cancel_without_pending_request(self) -> None:
        self.assertFalse(self.dispatcher.cancel())
        self.assertEqual(self.dispatcher.state, DispatchState.IDLE)

    async def test_task_cancellation_fails_the_turn_and_propagates(self) -> None:
        pending = self.dispatcher.begin("ok")
        task = asyncio.create_task(self.dispatcher.resolve(pending))
        await _settle()

        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task

        self.assertEqual(self.session.store.snapshot()[1].status, MessageStatus.FAILED)
        self.assertEqual(self.dispatcher.state, DispatchState.IDLE)

    async def test_state_passes_through_resolved(self) -> None:
        seen: list[DispatchState] = []
        self.session.dispatch_state.add_observer(lambda old, new: seen.append(new))
        pending = self.dispatcher.begin("ok")
        task = asyncio.create_task(self.dispatcher.resolve(pending))
        await _settle()
        self.backend.reply("done")
        await task
        self.assertEqual(
            seen, [DispatchState.SENDING, DispatchState.RESOLVED, DispatchState.IDLE]
        )

    async def test_update_is_published_on_the_bus(self) -> None:
        bus = EventBus()
        events: list[Event] = []
        bus.subscribe(MESSAGE_UPDATED, events.append)
        dispatcher = ReplyDispatcher(self.session, self.backend, bus=bus)

        pending = dispatcher.begin("ok")
        task = asyncio.create_task(dispatcher.resolve(pending))
        await _settle()
        self.backend.reply("yes")
        await task

        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].data["message"].text, "yes")
        self.assertEqual(events[0].data["session_id"], "session-1")

    async def test_backend_is_called_exactly_once_per_submit(self) -> None:
        for index in range(3):
            pending = self.dispatcher.begin(f"turn {index}")
            task = asyncio.create_task(self.dispatcher.resolve(pending))
            await _settle()
            self.backend.reply(f"reply {index}")
            await task

        self.assertEqual(
            self.backend.calls, [("session-1", f"turn {i}") for i in range(3)]
        )
        texts = [m.text for m in self.session.store.snapshot()]
        self.assertEqual(
            texts,
            ["turn 0", "reply 0", "turn 1", "reply 1", "turn 2", "reply 2"],
        )


if __name__ == "__main__":
    unittest.main()
