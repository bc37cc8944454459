"""Tests for dispatching confirmed actions."""

from __future__ import annotations

import asyncio
import unittest

from fakes import FakeGenerator, FakeRefresh, image_action, music_action, video_action
from genchat.conversation_log import ConversationLog
from genchat.exceptions import ServiceError, ServiceTransportError
from genchat.executor import GenerationExecutor
from genchat.ledger import CreditLedgerSync, CreditStore
from genchat.models import ActionType, ErrorKind, MediaKind
from genchat.services import ChatContext, GenerationResult, StaticSession


class ExecutorTests(unittest.IsolatedAsyncioTestCase):
    def make(self, generator: FakeGenerator, refresh: FakeRefresh, timeout=None):
        self.log = ConversationLog()
        session = StaticSession(identifier="0xabc", current_credits=10.0)
        self.ledger = CreditLedgerSync(CreditStore(10.0), refresh, session)
        return GenerationExecutor(
            self.log,
            {
                ActionType.GENERATE_IMAGE: generator,
                ActionType.GENERATE_MUSIC: generator,
            },
            self.ledger,
            context_factory=lambda: ChatContext("0xabc", self.ledger.balance),
            timeout_seconds=timeout,
        )

    async def test_success_appends_content_and_reconciles(self) -> None:
        refresh = FakeRefresh(9.0)
        generator = FakeGenerator(
            GenerationResult(urls=("https://cdn/x.png",), credits_used=0.7, remaining_credits=9.3)
        )
        executor = self.make(generator, refresh)
        action = image_action(model="nano-banana-pro", aspect_ratio="square")
        outcome = await executor.execute(action)
        self.assertTrue(outcome.ok)
        turn = self.log.get(outcome.turn_id)
        self.assertFalse(turn.is_loading)
        self.assertEqual(turn.generated_content.type, MediaKind.IMAGE)
        self.assertTrue(turn.generated_content.is_360)
        self.assertEqual(refresh.calls, ["0xabc"])
        self.assertEqual(self.ledger.balance, 9.0)

    async def test_missing_audio_url_is_provider_error(self) -> None:
        refresh = FakeRefresh(8.0)
        executor = self.make(FakeGenerator(GenerationResult(urls=())), refresh)
        with self.assertLogs("genchat.executor", level="WARNING"):
            outcome = await executor.execute(music_action(duration_seconds=30))
        self.assertFalse(outcome.ok)
        turn = self.log.get(outcome.turn_id)
        self.assertEqual(turn.error, "No audio URL returned")
        self.assertEqual(turn.error_kind, ErrorKind.PROVIDER)
        self.assertTrue(turn.is_terminal)
        self.assertEqual(refresh.calls, ["0xabc"])

    async def test_raised_message_is_kept_verbatim(self) -> None:
        executor = self.make(FakeGenerator(RuntimeError("Model overloaded")), FakeRefresh(1.0))
        with self.assertLogs("genchat.executor", level="WARNING"):
            outcome = await executor.execute(image_action(model="flux", aspect_ratio="square"))
        self.assertIsInstance(outcome.error, ServiceError)
        self.assertEqual(self.log.get(outcome.turn_id).error, "Model overloaded")

    async def test_timeout_is_transport_error(self) -> None:
        generator = FakeGenerator()
        generator.gate = asyncio.Event()
        executor = self.make(generator, FakeRefresh(1.0), timeout=0.01)
        with self.assertLogs("genchat.executor", level="WARNING"):
            outcome = await executor.execute(image_action(model="flux", aspect_ratio="square"))
        self.assertIsInstance(outcome.error, ServiceTransportError)
        self.assertEqual(self.log.get(outcome.turn_id).error_kind, ErrorKind.TRANSPORT)

    async def test_cancelled_generation_still_reconciles(self) -> None:
        refresh = FakeRefresh(8.0)
        generator = FakeGenerator()
        generator.gate = asyncio.Event()
        executor = self.make(generator, refresh)
        self.ledger.optimistic_decrement(0.5)
        task = asyncio.create_task(
            executor.execute(image_action(model="flux", aspect_ratio="square"))
        )
        while not generator.calls:
            await asyncio.sleep(0)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        turn = self.log.turns[-1]
        self.assertEqual(turn.error, "Generation cancelled.")
        self.assertIs(turn.error_kind, ErrorKind.TRANSPORT)
        self.assertEqual(refresh.calls, ["0xabc"])
        self.assertEqual(self.ledger.balance, 8.0)

    async def test_proposal_turn_is_untouched(self) -> None:
        executor = self.make(FakeGenerator(), FakeRefresh(1.0))
        before = len(self.log)
        outcome = await executor.execute(image_action(model="flux", aspect_ratio="square"))
        self.assertEqual(len(self.log), before + 1)
        self.assertEqual(self.log.turns[-1].id, outcome.turn_id)

    async def test_missing_service_is_error_turn(self) -> None:
        executor = self.make(FakeGenerator(), FakeRefresh(1.0))
        with self.assertLogs("genchat.executor", level="WARNING"):
            outcome = await executor.execute(video_action(model="ltx", duration="4s"))
        self.assertFalse(outcome.ok)


if __name__ == "__main__":
    unittest.main()
