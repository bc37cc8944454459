"""Contracts of the remote collaborators the core drives."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from .models import HistoryEntry, PendingAction


@dataclass(frozen=True)
class ChatContext:
    """Caller identity and balance sent along with every request."""

    identifier: str | None
    credits: float

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"credits": self.credits}
        if self.identifier:
            payload["walletAddress"] = self.identifier
        return payload


@dataclass(frozen=True)
class InterpretResult:
    message: str = ""
    error: str | None = None
    action: PendingAction | None = None


@dataclass(frozen=True)
class GenerationResult:
    urls: tuple[str, ...]
    credits_used: float | None = None
    remaining_credits: float | None = None


@runtime_checkable
class InterpretationService(Protocol):
    async def interpret(
        self,
        text: str,
        history: Sequence[HistoryEntry],
        context: ChatContext,
        attachments: Sequence[str] | None,
        model_id: str,
    ) -> InterpretResult: ...


@runtime_checkable
class GenerationService(Protocol):
    """One backend per action type; raises with a human-readable message."""

    async def invoke(self, action: PendingAction, context: ChatContext) -> GenerationResult: ...


@runtime_checkable
class CreditRefreshService(Protocol):
    async def refresh(self, identifier: str) -> float: ...


class SessionProvider(Protocol):
    """Read-only view of the authenticated user."""

    @property
    def is_authenticated(self) -> bool: ...

    @property
    def identifier(self) -> str | None: ...

    @property
    def current_credits(self) -> float: ...


@dataclass
class StaticSession:
    """Session whose values are fixed at construction (CLI, tests)."""

    identifier: str | None = None
    current_credits: float = 0.0
    authenticated: bool = True

    @property
    def is_authenticated(self) -> bool:
        return self.authenticated and bool(self.identifier)
