"""Line-based console front end driving a ConversationOrchestrator."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
from typing import Any

from .attachments import LocalFile
from .commands import Command, help_text, parse_command
from .events import CONVERSATION_CHANGED, CREDITS_CHANGED, Event
from .exceptions import GenChatError
from .http_services import ServiceBundle, build_services
from .models import Role, Turn
from .orchestrator import ConversationOrchestrator
from .services import StaticSession

LOGGER = logging.getLogger(__name__)

_ROLE_LABELS = {Role.USER: "you", Role.ASSISTANT: "assistant", Role.SYSTEM: "system"}


def render_turn(turn: Turn) -> str:
    """Format one settled turn for the terminal."""
    label = _ROLE_LABELS.get(turn.role, turn.role.value)
    lines = [f"[{label}] {turn.content}".rstrip()]
    if turn.error:
        kind = turn.error_kind.value if turn.error_kind else "error"
        lines.append(f"  ! {turn.error} ({kind})")
    if turn.pending_action is not None:
        action = turn.pending_action
        lines.append(
            f"  > proposed {action.type.media_kind.value}: {action.description or action.params.prompt}"
        )
        lines.append(
            f"    estimated {action.estimated_credits:g} credits; /options, /set, /confirm or /cancel"
        )
    if turn.generated_content is not None:
        content = turn.generated_content
        suffix = " (360)" if content.is_360 else ""
        for url in content.urls:
            lines.append(f"  * {content.type.value}{suffix}: {url}")
    return "\n".join(lines)


class ConsoleApp:
    """Print settled turns as they arrive and map console lines to operations."""

    def __init__(
        self,
        config: dict[str, dict[str, Any]],
        *,
        services: ServiceBundle | None = None,
        output: Callable[[str], None] = print,
    ) -> None:
        self.config = config
        self.output = output
        self.services = services or build_services(config["service"])
        session_cfg = config["session"]
        self.session = StaticSession(
            identifier=session_cfg.get("identifier") or None,
            current_credits=float(session_cfg.get("initial_credits", 0.0)),
        )
        self.orchestrator = ConversationOrchestrator(
            session=self.session,
            interpretation=self.services.interpretation,
            generation=self.services.generation,
            refresh=self.services.refresh,
            chat_model=config["assistant"]["chat_model"],
            history_limit=int(config["service"]["history_limit"]),
            interpret_timeout=float(config["assistant"]["timeout_seconds"]),
            generation_timeout=float(config["generation"]["timeout_seconds"]),
            welcome_message=config["app"]["welcome_message"],
            max_slots=int(config["attachments"]["max_slots"]),
            max_image_bytes=int(config["attachments"]["max_image_bytes"]),
        )
        self._printed: set[str] = set()
        self._running = True
        self.orchestrator.bus.subscribe(CONVERSATION_CHANGED, self._on_turns)
        self.orchestrator.bus.subscribe(CREDITS_CHANGED, self._on_credits)

    def _on_turns(self, event: Event) -> None:
        for turn in event.data["turns"]:
            if turn.is_loading or turn.id in self._printed:
                continue
            self._printed.add(turn.id)
            self.output(render_turn(turn))

    def _on_credits(self, event: Event) -> None:
        if event.data.get("source") == "authoritative":
            self.output(f"  credits: {event.data['credits']:g}")

    async def handle(self, line: str) -> bool:
        """Handle one console line; return ``False`` once the user quits."""
        command = parse_command(line)
        try:
            await self._dispatch(command)
        except GenChatError as exc:
            self.output(f"  ! {exc}")
        return self._running

    async def _dispatch(self, command: Command) -> None:
        orchestrator = self.orchestrator
        if command.is_message:
            if not command.text:
                return
            if not self.session.is_authenticated:
                self.output("  ! Not signed in; set [session] identifier in config.toml.")
            elif not orchestrator.submit_send(command.text):
                self.output("  ! Still waiting for the assistant.")
            return

        name = command.name
        if name == "quit":
            self._running = False
        elif name == "help":
            self.output(help_text())
        elif name == "attach":
            slots = await orchestrator.attachments.ingest(
                [LocalFile(path) for path in command.args]
            )
            self.output(f"  attached {len(slots)} of {len(command.args)} image(s)")
        elif name == "detach":
            try:
                index = int(command.args[0]) if command.args else 0
            except ValueError:
                self.output("  usage: /detach <index>")
                return
            if not orchestrator.attachments.remove(index):
                self.output(f"  ! No attachment at index {index}.")
        elif name == "options":
            flow = orchestrator.flow()
            selection = flow.selection()
            for param, values in flow.options().items():
                choices = ", ".join(str(value) for value in values)
                self.output(f"  {param} = {selection[param]}  ({choices})")
            self.output(f"  estimated {flow.estimated_credits:g} credits")
        elif name == "set":
            if len(command.args) < 2:
                self.output("  usage: /set <param> <value>")
                return
            cost = orchestrator.select_param(command.args[0], command.args[1])
            self.output(f"  estimated {cost:g} credits")
        elif name == "confirm":
            orchestrator.submit_confirm()
        elif name == "cancel":
            await orchestrator.cancel_action()
        elif name == "retry":
            turn_id = self._last_retryable()
            if turn_id is None:
                self.output("  ! Nothing to retry.")
                return
            task = asyncio.create_task(orchestrator.retry(turn_id))
            orchestrator.tasks.add(task)
        elif name == "clear":
            if orchestrator.is_loading or orchestrator.is_generating:
                self.output("  ! Wait for the current request to finish.")
                return
            self._printed.clear()
            orchestrator.clear()
        elif name == "credits":
            await orchestrator.refresh_credits()
            self.output(f"  credits: {orchestrator.ledger.balance:g}")

    def _last_retryable(self) -> str | None:
        for turn in reversed(self.orchestrator.turns):
            if self.orchestrator.can_retry(turn.id):
                return turn.id
        return None

    async def run(self) -> None:
        self.output(f"{self.config['app']['title']}  (type /help for commands)")
        self._on_turns(Event(CONVERSATION_CHANGED, {"turns": self.orchestrator.turns}))
        try:
            while self._running:
                try:
                    line = await asyncio.to_thread(input, "> ")
                except EOFError:
                    break
                await self.handle(line)
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        await self.orchestrator.aclose()
        await self.services.aclose()
        LOGGER.info("console.closed", extra={"event": "console.closed"})
