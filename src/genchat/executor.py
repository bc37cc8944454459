"""Dispatch of confirmed actions to the generation backends."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass
import logging
import re

from . import catalog
from .conversation_log import ConversationLog
from .exceptions import (
    GenChatError,
    ProviderResultError,
    ServiceError,
    ServiceTransportError,
)
from .ledger import CreditLedgerSync
from .models import (
    ActionType,
    ErrorKind,
    GeneratedContent,
    MediaKind,
    PendingAction,
    Role,
    error_kind_for,
)
from .services import ChatContext, GenerationResult, GenerationService

LOGGER = logging.getLogger(__name__)

_PANORAMA_PROMPT_RE = re.compile(r"\b360\b", re.IGNORECASE)

_MISSING_URL_MESSAGES: dict[MediaKind, str] = {
    MediaKind.IMAGE: "No image URL returned",
    MediaKind.VIDEO: "No video URL returned",
    MediaKind.MUSIC: "No audio URL returned",
}


@dataclass(frozen=True)
class ExecutionOutcome:
    """Terminal result of one execution: content on success, error otherwise."""

    turn_id: str
    content: GeneratedContent | None = None
    error: GenChatError | None = None

    @property
    def ok(self) -> bool:
        return self.content is not None


class GenerationExecutor:
    """Run one confirmed action and record its outcome as a new turn.

    Callers guarantee that no other execution is in flight.
    """

    def __init__(
        self,
        log: ConversationLog,
        services: Mapping[ActionType, GenerationService],
        ledger: CreditLedgerSync,
        *,
        context_factory: Callable[[], ChatContext],
        timeout_seconds: float | None = None,
    ) -> None:
        self._log = log
        self._services = dict(services)
        self._ledger = ledger
        self._context_factory = context_factory
        self.timeout_seconds = timeout_seconds or None

    async def execute(self, action: PendingAction) -> ExecutionOutcome:
        kind = action.type.media_kind
        turn = self._log.append(
            Role.ASSISTANT, f"Generating your {kind.value}...", is_loading=True
        )
        LOGGER.info(
            "executor.dispatch",
            extra={
                "event": "executor.dispatch",
                "turn_id": turn.id,
                "action_type": action.type.value,
                "credits": action.estimated_credits,
            },
        )
        try:
            result = await self._invoke(action)
            content = self._build_content(action, result)
        except asyncio.CancelledError:
            self._log.resolve(
                turn.id,
                content="",
                error="Generation cancelled.",
                error_kind=ErrorKind.TRANSPORT,
            )
            # The request may already have been billed.
            await asyncio.shield(self._ledger.reconcile())
            raise
        except Exception as exc:  # noqa: BLE001 - every failure becomes a terminal turn.
            error = self._map_exception(exc)
            self._log.resolve(
                turn.id,
                content="",
                error=str(error),
                error_kind=error_kind_for(error),
            )
            LOGGER.warning(
                "executor.failed",
                extra={
                    "event": "executor.failed",
                    "turn_id": turn.id,
                    "error_type": type(error).__name__,
                    "error": str(error),
                },
            )
            # The provider may have charged before failing.
            await self._ledger.reconcile()
            return ExecutionOutcome(turn_id=turn.id, error=error)

        self._log.resolve(turn.id, content="", generated_content=content)
        if content.remaining_credits is not None:
            self._ledger.apply_authoritative(content.remaining_credits)
        LOGGER.info(
            "executor.completed",
            extra={
                "event": "executor.completed",
                "turn_id": turn.id,
                "urls": len(content.urls),
                "credits_used": content.credits_used,
            },
        )
        await self._ledger.reconcile()
        return ExecutionOutcome(turn_id=turn.id, content=content)

    async def _invoke(self, action: PendingAction) -> GenerationResult:
        service = self._services.get(action.type)
        if service is None:
            raise ServiceError(f"No generation service configured for {action.type.value}.")
        call = service.invoke(action, self._context_factory())
        if self.timeout_seconds is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            raise ServiceTransportError(
                f"Generation timed out after {self.timeout_seconds:g}s."
            ) from None

    @staticmethod
    def _build_content(action: PendingAction, result: GenerationResult) -> GeneratedContent:
        kind = action.type.media_kind
        urls = tuple(url for url in result.urls if isinstance(url, str) and url)
        if not urls:
            raise ProviderResultError(_MISSING_URL_MESSAGES[kind])
        model = getattr(action.params, "model", None)
        prompt = action.params.prompt
        return GeneratedContent(
            type=kind,
            urls=urls,
            credits_used=result.credits_used,
            remaining_credits=result.remaining_credits,
            prompt=prompt,
            model=model,
            is_360=model in catalog.PANORAMA_MODELS
            or bool(_PANORAMA_PROMPT_RE.search(prompt)),
        )

    @staticmethod
    def _map_exception(exc: Exception) -> GenChatError:
        if isinstance(exc, GenChatError):
            return exc
        message = str(exc).strip() or type(exc).__name__
        return ServiceError(message)
