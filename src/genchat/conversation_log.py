"""Ordered, append-only log of conversation turns."""

from __future__ import annotations

from collections.abc import Iterator
import logging
from typing import Any

from .events import CONVERSATION_CHANGED, EventBus
from .exceptions import InvalidTransitionError
from .models import (
    ErrorKind,
    GeneratedContent,
    HistoryEntry,
    PendingAction,
    Role,
    Turn,
    new_turn_id,
    utc_timestamp,
)

LOGGER = logging.getLogger(__name__)

CLEARED_MESSAGE = "Session cleared. Ready for new commands."

_UNSET: Any = object()


class ConversationLog:
    """Own every turn; only loading turns may be resolved in place."""

    def __init__(self, welcome_message: str = "", bus: EventBus | None = None) -> None:
        self._bus = bus
        self._turns: list[Turn] = []
        self._index: dict[str, Turn] = {}
        if welcome_message.strip():
            self.append(Role.ASSISTANT, welcome_message.strip())

    @property
    def turns(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))

    def get(self, turn_id: str) -> Turn | None:
        return self._index.get(turn_id)

    def append(
        self,
        role: Role,
        content: str,
        *,
        is_loading: bool = False,
        pending_action: PendingAction | None = None,
        error: str | None = None,
        error_kind: ErrorKind | None = None,
    ) -> Turn:
        turn = Turn(
            id=new_turn_id(),
            role=role,
            content=content,
            timestamp=utc_timestamp(),
            is_loading=is_loading,
            error=error,
            error_kind=error_kind,
            pending_action=pending_action,
        )
        self._turns.append(turn)
        self._index[turn.id] = turn
        self._notify()
        return turn

    def resolve(
        self,
        turn_id: str,
        *,
        content: str | None = None,
        error: str | None = None,
        error_kind: ErrorKind | None = None,
        pending_action: PendingAction | None = _UNSET,
        generated_content: GeneratedContent | None = None,
    ) -> Turn:
        """Attach the outcome to a loading turn and end its loading state."""
        turn = self._index.get(turn_id)
        if turn is None:
            raise KeyError(turn_id)
        if not turn.is_loading:
            raise InvalidTransitionError(f"Turn {turn_id} is no longer loading.")
        if content is not None:
            turn.content = content
        if pending_action is not _UNSET:
            turn.pending_action = pending_action
        turn.error = error
        turn.error_kind = error_kind if error is not None else None
        turn.generated_content = generated_content
        turn.is_loading = False
        self._notify()
        return turn

    def history(self, limit: int = 20) -> list[HistoryEntry]:
        """Return the latest settled turns for an interpretation request."""
        settled = [turn for turn in self._turns if not turn.is_loading]
        window = settled[-limit:] if limit > 0 else []
        return [
            HistoryEntry(
                role=turn.role.value,
                content=turn.content,
                has_generation=turn.generated_content is not None,
            )
            for turn in window
        ]

    def clear(self, message: str = CLEARED_MESSAGE) -> None:
        self._turns.clear()
        self._index.clear()
        LOGGER.info("conversation.cleared", extra={"event": "conversation.cleared"})
        self.append(Role.ASSISTANT, message)

    def _notify(self) -> None:
        if self._bus is not None:
            self._bus.publish(
                CONVERSATION_CHANGED,
                {"turns": self.turns},
                source="conversation_log",
            )
