"""Conversation orchestration: send, confirm, cancel, retry and clear."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
import logging
from typing import Any

from . import catalog, costs
from .attachments import MAX_IMAGE_BYTES, MAX_SLOTS, AttachmentStore
from .conversation_log import CLEARED_MESSAGE, ConversationLog
from .events import STATE_CHANGED, EventBus
from .exceptions import (
    ActionInFlightError,
    ActionValidationError,
    GenChatError,
    InsufficientCreditsError,
    ServiceError,
    ServiceTransportError,
)
from .executor import ExecutionOutcome, GenerationExecutor
from .flow import ActionConfirmationFlow
from .ledger import CreditLedgerSync, CreditStore
from .models import (
    ActionType,
    ErrorKind,
    HistoryEntry,
    PendingAction,
    Role,
    Turn,
    error_kind_for,
)
from .resolver import ParameterResolver
from .services import (
    ChatContext,
    CreditRefreshService,
    GenerationService,
    InterpretationService,
    InterpretResult,
    SessionProvider,
)
from .state import ActionState
from .task_manager import TaskManager

LOGGER = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Action cancelled. Awaiting next command."

SEND_TASK = "send"
GENERATE_TASK = "generate"


def attachment_marker(count: int) -> str:
    """Prefix recorded on a user turn that was sent with reference images."""
    if count <= 0:
        return ""
    if count == 1:
        return "[ref:image_attached]"
    return f"[ref:{count}_images]"


@dataclass(frozen=True)
class InterpretRequest:
    """Everything needed to replay one interpretation call."""

    text: str
    history: tuple[HistoryEntry, ...]
    attachments: tuple[str, ...] = ()


@dataclass(frozen=True)
class ConversationSnapshot:
    turns: tuple[Turn, ...]
    credits: float
    attachments: list[dict[str, Any]]
    is_ingesting: bool
    is_loading: bool
    is_generating: bool
    input_text: str


class ConversationOrchestrator:
    """Drive the conversation and the lifecycle of proposed actions.

    At most one interpretation and at most one generation are in flight at
    any time. Validation problems raised by ``confirm_action`` and friends
    propagate to the caller; failures of remote calls end up as error turns.
    """

    def __init__(
        self,
        *,
        session: SessionProvider,
        interpretation: InterpretationService,
        generation: Mapping[ActionType, GenerationService],
        refresh: CreditRefreshService | None = None,
        bus: EventBus | None = None,
        resolver: ParameterResolver | None = None,
        chat_model: str = catalog.DEFAULT_CHAT_MODEL,
        history_limit: int = 20,
        interpret_timeout: float | None = 60.0,
        generation_timeout: float | None = 600.0,
        welcome_message: str = "",
        max_slots: int = MAX_SLOTS,
        max_image_bytes: int = MAX_IMAGE_BYTES,
    ) -> None:
        self.bus = bus or EventBus()
        self.session = session
        self.chat_model = chat_model
        self.history_limit = history_limit
        self.interpret_timeout = interpret_timeout or None
        self.resolver = resolver or ParameterResolver()
        self.log = ConversationLog(welcome_message, bus=self.bus)
        self.attachments = AttachmentStore(
            max_slots=max_slots, max_image_bytes=max_image_bytes, bus=self.bus
        )
        self.credits = CreditStore(session.current_credits, bus=self.bus)
        self.ledger = CreditLedgerSync(self.credits, refresh, session)
        self.executor = GenerationExecutor(
            self.log,
            generation,
            self.ledger,
            context_factory=self._context,
            timeout_seconds=generation_timeout,
        )
        self.tasks = TaskManager()
        self._interpretation = interpretation
        self._flows: dict[str, ActionConfirmationFlow] = {}
        self._retryable: dict[str, InterpretRequest | PendingAction] = {}
        self._active_turn_id: str | None = None
        self._loading = False
        self.input_text = ""

    # -- read side -------------------------------------------------------

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def is_generating(self) -> bool:
        return self._active_turn_id is not None

    @property
    def turns(self) -> tuple[Turn, ...]:
        return self.log.turns

    def flow(self, turn_id: str | None = None) -> ActionConfirmationFlow:
        """Return the flow for ``turn_id``, or the newest one still proposed."""
        if turn_id is not None:
            flow = self._flows.get(turn_id)
            if flow is None:
                raise ActionValidationError(f"Turn {turn_id} has no pending action.")
            return flow
        for flow in reversed(list(self._flows.values())):
            if flow.state is ActionState.PROPOSED:
                return flow
        raise ActionValidationError("There is no pending action.")

    def can_retry(self, turn_id: str) -> bool:
        return turn_id in self._retryable

    def snapshot(self) -> ConversationSnapshot:
        return ConversationSnapshot(
            turns=self.log.turns,
            credits=self.ledger.balance,
            attachments=self.attachments.snapshot(),
            is_ingesting=self.attachments.is_ingesting,
            is_loading=self.is_loading,
            is_generating=self.is_generating,
            input_text=self.input_text,
        )

    # -- sending ---------------------------------------------------------

    async def send(
        self, text: str | None = None, attachments: Sequence[str] | None = None
    ) -> bool:
        """Send one user message; return ``False`` when it was not sent.

        Empty input, an interpretation already in flight, and a signed-out
        session are silent no-ops. Attachments default to the staged images,
        which are cleared before the network call starts.
        """
        raw = self.input_text if text is None else text
        message = raw.strip()
        if not message or self._loading:
            return False
        if not self.session.is_authenticated:
            LOGGER.info("chat.send.unauthenticated", extra={"event": "chat.send.unauthenticated"})
            return False

        staged = attachments is None
        images = self.attachments.data_uris() if staged else tuple(attachments)
        marker = attachment_marker(len(images))
        content = f"{marker} {message}" if marker else message
        request = InterpretRequest(
            text=content,
            history=tuple(self.log.history(self.history_limit)),
            attachments=images,
        )
        self.log.append(Role.USER, content)
        placeholder = self.log.append(Role.ASSISTANT, "", is_loading=True)
        if staged:
            self.attachments.clear()
        self.input_text = ""
        LOGGER.info(
            "chat.send",
            extra={
                "event": "chat.send",
                "turn_id": placeholder.id,
                "attachments": len(images),
                "history": len(request.history),
            },
        )
        await self._interpret_into(placeholder.id, request)
        return True

    def submit_send(self, text: str | None = None) -> bool:
        """Start ``send`` in the background; ``False`` if one is already running."""
        if self._loading or self.tasks.is_running(SEND_TASK):
            return False
        task = asyncio.create_task(self.send(text), name=SEND_TASK)
        self.tasks.add(task, name=SEND_TASK)
        return True

    async def _interpret_into(self, turn_id: str, request: InterpretRequest) -> None:
        self._set_loading(True)
        try:
            try:
                result = await self._call_interpreter(request)
            except asyncio.CancelledError:
                self.log.resolve(
                    turn_id,
                    content="",
                    error="Request cancelled.",
                    error_kind=ErrorKind.TRANSPORT,
                )
                raise
            except Exception as exc:  # noqa: BLE001 - every failure becomes an error turn.
                error = exc
                if not isinstance(error, GenChatError):
                    error = ServiceError(str(exc) or type(exc).__name__)
                kind = error_kind_for(error)
                self.log.resolve(turn_id, content="", error=str(error), error_kind=kind)
                if kind is ErrorKind.TRANSPORT:
                    self._retryable[turn_id] = request
                LOGGER.warning(
                    "chat.interpret.failed",
                    extra={
                        "event": "chat.interpret.failed",
                        "turn_id": turn_id,
                        "error_type": type(error).__name__,
                        "error": str(error),
                    },
                )
                return

            action = self._prepare_action(result.action, request.attachments)
            self.log.resolve(
                turn_id,
                content=result.message,
                error=result.error,
                error_kind=ErrorKind.PROVIDER if result.error else None,
                pending_action=action,
            )
            if action is not None:
                self._flows[turn_id] = self._new_flow(turn_id, action)
                LOGGER.info(
                    "chat.action.proposed",
                    extra={
                        "event": "chat.action.proposed",
                        "turn_id": turn_id,
                        "action_type": action.type.value,
                        "credits": action.estimated_credits,
                    },
                )
        finally:
            self._set_loading(False)

    async def _call_interpreter(self, request: InterpretRequest) -> InterpretResult:
        call = self._interpretation.interpret(
            request.text,
            list(request.history),
            self._context(),
            list(request.attachments) or None,
            self.chat_model,
        )
        if self.interpret_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.interpret_timeout)
        except asyncio.TimeoutError:
            raise ServiceTransportError(
                f"Assistant did not respond within {self.interpret_timeout:g}s."
            ) from None

    def _prepare_action(
        self, action: PendingAction | None, images: tuple[str, ...]
    ) -> PendingAction | None:
        """Apply default selections and carry the sent images into the action."""
        if action is None:
            return None
        params = action.params
        if images and not params.reference_images:
            params = replace(params, reference_images=images)
        params = self.resolver.resolve(replace(action, params=params))
        return action.with_params(params, costs.estimate(params))

    def _new_flow(self, turn_id: str, action: PendingAction) -> ActionConfirmationFlow:
        return ActionConfirmationFlow(
            turn_id,
            action,
            self.resolver,
            in_flight=lambda: self._active_turn_id not in (None, turn_id),
        )

    # -- pending actions -------------------------------------------------

    def options(self, turn_id: str | None = None) -> dict[str, tuple[Any, ...]]:
        return self.flow(turn_id).options()

    def select_param(self, name: str, value: Any, turn_id: str | None = None) -> float:
        """Change one parameter of a proposed action; return the new estimate."""
        flow = self.flow(turn_id)
        flow.select(name, value)
        self._publish_state()
        return flow.estimated_credits

    async def confirm_action(
        self,
        turn_id: str | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> ExecutionOutcome:
        """Confirm a proposed action and run it to a terminal state."""
        flow = self._claim(turn_id, overrides)
        return await self._run(flow, overrides)

    def submit_confirm(
        self,
        turn_id: str | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> asyncio.Task[ExecutionOutcome]:
        """Validate synchronously, then run the generation in the background."""
        flow = self._claim(turn_id, overrides)
        task = asyncio.create_task(self._run(flow, overrides), name=GENERATE_TASK)
        self.tasks.add(task, name=GENERATE_TASK)
        return task

    def _claim(
        self, turn_id: str | None, overrides: Mapping[str, Any] | None
    ) -> ActionConfirmationFlow:
        if self.is_generating:
            raise ActionInFlightError("Another generation is already running.")
        flow = self.flow(turn_id)
        preview = flow.preview(overrides)
        balance = self.ledger.balance
        if preview.estimated_credits > balance:
            LOGGER.info(
                "chat.confirm.insufficient",
                extra={
                    "event": "chat.confirm.insufficient",
                    "turn_id": flow.turn_id,
                    "required": preview.estimated_credits,
                    "balance": balance,
                },
            )
            raise InsufficientCreditsError(
                f"Insufficient credits: this costs {preview.estimated_credits:g}, "
                f"you have {balance:g}."
            )
        self._active_turn_id = flow.turn_id
        self._publish_state()
        return flow

    async def _run(
        self, flow: ActionConfirmationFlow, overrides: Mapping[str, Any] | None
    ) -> ExecutionOutcome:
        try:
            action = await flow.confirm(overrides)
            await flow.begin_execution()
            self.ledger.optimistic_decrement(action.estimated_credits)
            try:
                outcome = await self.executor.execute(action)
            except BaseException:
                await flow.fail()
                raise
            if outcome.ok:
                await flow.complete()
            else:
                await flow.fail()
                if outcome.error is not None and error_kind_for(outcome.error) is ErrorKind.TRANSPORT:
                    self._retryable[outcome.turn_id] = action
            return outcome
        finally:
            self._active_turn_id = None
            self._publish_state()

    async def cancel_action(self, turn_id: str | None = None) -> Turn:
        """Dismiss a proposed action; no credits move and nothing is sent."""
        flow = self.flow(turn_id)
        await flow.cancel()
        return self.log.append(Role.SYSTEM, CANCELLED_MESSAGE)

    # -- retry and housekeeping ------------------------------------------

    async def retry(self, turn_id: str) -> bool | ExecutionOutcome:
        """Replay the request behind a turn that failed in transit.

        Interpretations are replayed into a fresh loading turn. Generations
        go through a new confirmation flow, so credit checks apply again.
        """
        request = self._retryable.get(turn_id)
        if request is None:
            raise ActionValidationError(f"Turn {turn_id} cannot be retried.")
        LOGGER.info("chat.retry", extra={"event": "chat.retry", "turn_id": turn_id})
        if isinstance(request, InterpretRequest):
            if self._loading:
                return False
            del self._retryable[turn_id]
            placeholder = self.log.append(Role.ASSISTANT, "", is_loading=True)
            await self._interpret_into(placeholder.id, request)
            return True

        flow = self._new_flow(turn_id, request)
        self._flows[turn_id] = flow
        try:
            claimed = self._claim(turn_id, None)
        except GenChatError:
            del self._flows[turn_id]
            raise
        del self._retryable[turn_id]
        return await self._run(claimed, None)

    def clear(self) -> bool:
        """Reset the conversation; refused while a request is in flight."""
        if self._loading or self.is_generating:
            return False
        self._flows.clear()
        self._retryable.clear()
        self.log.clear(CLEARED_MESSAGE)
        return True

    async def refresh_credits(self) -> float | None:
        return await self.ledger.reconcile()

    async def aclose(self) -> None:
        """Cancel background work, then detach every subscriber."""
        await self.tasks.cancel_all()
        self.bus.clear()

    # -- internals -------------------------------------------------------

    def _context(self) -> ChatContext:
        return ChatContext(identifier=self.session.identifier, credits=self.ledger.balance)

    def _set_loading(self, value: bool) -> None:
        self._loading = value
        self._publish_state()

    def _publish_state(self) -> None:
        self.bus.publish(
            STATE_CHANGED,
            {"is_loading": self._loading, "is_generating": self.is_generating},
            source="orchestrator",
        )
