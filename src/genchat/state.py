"""Action lifecycle state machine and lock-protected transitions."""

from __future__ import annotations

import asyncio
from enum import Enum
import logging

from .exceptions import InvalidTransitionError

LOGGER = logging.getLogger(__name__)


class ActionState(str, Enum):
    """Finite state machine for a single pending action."""

    PROPOSED = "PROPOSED"
    CONFIRMED = "CONFIRMED"
    EXECUTING = "EXECUTING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {ActionState.COMPLETE, ActionState.FAILED, ActionState.CANCELLED}
)

# PROPOSED -> PROPOSED is the parameter-edit self-loop. CONFIRMED -> FAILED
# covers a dispatch that never reaches the provider.
ALLOWED_TRANSITIONS: dict[ActionState, frozenset[ActionState]] = {
    ActionState.PROPOSED: frozenset(
        {ActionState.PROPOSED, ActionState.CONFIRMED, ActionState.CANCELLED}
    ),
    ActionState.CONFIRMED: frozenset({ActionState.EXECUTING, ActionState.FAILED}),
    ActionState.EXECUTING: frozenset({ActionState.COMPLETE, ActionState.FAILED}),
    ActionState.COMPLETE: frozenset(),
    ActionState.FAILED: frozenset(),
    ActionState.CANCELLED: frozenset(),
}


class StateManager:
    """Manage guarded state transitions with async lock semantics."""

    def __init__(self, initial: ActionState = ActionState.PROPOSED) -> None:
        self._lock = asyncio.Lock()
        self._state = initial

    @property
    def state(self) -> ActionState:
        """Current state without taking the lock, for synchronous readers."""
        return self._state

    async def transition_to(self, new_state: ActionState) -> ActionState:
        """Transition to a new state, rejecting moves the table does not allow."""
        async with self._lock:
            self._check(self._state, new_state)
            previous = self._state
            self._state = new_state
        LOGGER.debug(
            "action.state.transition",
            extra={
                "event": "action.state.transition",
                "from_state": previous.value,
                "to_state": new_state.value,
            },
        )
        return new_state

    async def transition_if(
        self,
        expected_state: ActionState,
        new_state: ActionState,
    ) -> bool:
        """Transition only when current state matches expected state."""
        async with self._lock:
            if self._state != expected_state:
                return False
            self._check(self._state, new_state)
            self._state = new_state
            return True

    @staticmethod
    def _check(current: ActionState, new_state: ActionState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"Cannot move action from {current.value} to {new_state.value}."
            )
