"""Tests for the line-based console front end."""

from __future__ import annotations

from copy import deepcopy
import unittest

from fakes import FakeGenerator, FakeInterpreter, FakeRefresh, image_action
from genchat.config import DEFAULT_CONFIG
from genchat.console import ConsoleApp, render_turn
from genchat.exceptions import ServiceTransportError
from genchat.models import (
    ActionType,
    ErrorKind,
    GeneratedContent,
    MediaKind,
    Role,
    Turn,
)
from genchat.services import InterpretResult


class _Bundle:
    def __init__(self, interpreter: FakeInterpreter, generator: FakeGenerator) -> None:
        self.interpretation = interpreter
        self.generation = {action_type: generator for action_type in ActionType}
        self.refresh = FakeRefresh(9.5)
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True


def _config() -> dict:
    config = deepcopy(DEFAULT_CONFIG)
    config["session"]["identifier"] = "0xabc"
    config["session"]["initial_credits"] = 10.0
    config["app"]["welcome_message"] = "Hello."
    return config


class RenderTurnTests(unittest.TestCase):
    def test_error_turn_shows_kind(self) -> None:
        turn = Turn(
            id="t",
            role=Role.ASSISTANT,
            content="",
            timestamp="",
            error="Unable to reach the backend.",
            error_kind=ErrorKind.TRANSPORT,
        )
        self.assertIn("! Unable to reach the backend. (transport)", render_turn(turn))

    def test_generated_content_lists_urls(self) -> None:
        turn = Turn(
            id="t",
            role=Role.ASSISTANT,
            content="Done.",
            timestamp="",
            generated_content=GeneratedContent(
                type=MediaKind.IMAGE, urls=("https://cdn.example/a.png",), is_360=True
            ),
        )
        rendered = render_turn(turn)
        self.assertTrue(rendered.startswith("[assistant] Done."))
        self.assertIn("* image (360): https://cdn.example/a.png", rendered)


class ConsoleAppTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.lines: list[str] = []
        self.interpreter = FakeInterpreter(
            InterpretResult(message="Here is a plan.", action=image_action())
        )
        self.generator = FakeGenerator()
        self.bundle = _Bundle(self.interpreter, self.generator)
        self.app = ConsoleApp(_config(), services=self.bundle, output=self.lines.append)

    def _output(self) -> str:
        return "\n".join(self.lines)

    async def test_message_then_confirm_prints_result(self) -> None:
        self.assertTrue(await self.app.handle("draw a fox"))
        await self.app.orchestrator.tasks.await_all()
        self.assertIn("[you] draw a fox", self._output())
        self.assertIn("proposed image", self._output())

        await self.app.handle("/set model flux-2")
        self.assertIn("estimated 0.65 credits", self._output())

        await self.app.handle("/confirm")
        await self.app.orchestrator.tasks.await_all()
        self.assertIn("https://cdn.example/out.png", self._output())
        self.assertIn("credits: 9.5", self._output())
        self.assertEqual(self.generator.calls[0][0].params.model, "flux-2")

    async def test_domain_errors_are_printed_not_raised(self) -> None:
        await self.app.handle("/confirm")
        self.assertIn("! There is no pending action.", self._output())

        await self.app.handle("draw a fox")
        await self.app.orchestrator.tasks.await_all()
        await self.app.handle("/set model no-such-model")
        self.assertIn("! Invalid model", self._output())

    async def test_retry_replays_transport_failure(self) -> None:
        self.interpreter.results = [
            ServiceTransportError("Unable to reach the backend."),
            InterpretResult(message="Back online."),
        ]
        await self.app.handle("hello")
        await self.app.orchestrator.tasks.await_all()
        self.assertIn("(transport)", self._output())

        await self.app.handle("/retry")
        await self.app.orchestrator.tasks.await_all()
        self.assertIn("Back online.", self._output())
        self.assertEqual(len(self.interpreter.calls), 2)

        await self.app.handle("/retry")
        self.assertIn("Nothing to retry.", self._output())

    async def test_detach_requires_integer_index(self) -> None:
        await self.app.handle("/detach first")
        self.assertIn("usage: /detach <index>", self._output())
        await self.app.handle("/detach 0")
        self.assertIn("No attachment at index 0.", self._output())

    async def test_quit_stops_loop_and_help_lists_commands(self) -> None:
        await self.app.handle("/help")
        self.assertIn("/confirm", self._output())
        self.assertFalse(await self.app.handle("/quit"))

    async def test_signed_out_session_is_reported(self) -> None:
        self.app.session.identifier = None
        await self.app.handle("draw a fox")
        self.assertIn("Not signed in", self._output())
        self.assertEqual(self.interpreter.calls, [])

    async def test_aclose_releases_services(self) -> None:
        await self.app.aclose()
        self.assertTrue(self.bundle.closed)


if __name__ == "__main__":
    unittest.main()
