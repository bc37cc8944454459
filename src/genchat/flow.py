"""Lifecycle of one pending action from proposal to a terminal state."""

from __future__ import annotations

from collections.abc import Callable, Mapping
import logging
from typing import Any

from . import costs
from .exceptions import ActionInFlightError, InvalidTransitionError
from .models import ActionParams, PendingAction
from .resolver import ParameterResolver
from .state import ActionState, StateManager

LOGGER = logging.getLogger(__name__)


class ActionConfirmationFlow:
    """Guarded ``PROPOSED -> CONFIRMED -> EXECUTING -> COMPLETE|FAILED`` machine.

    The proposed action is kept as delivered by the assistant. Parameter
    edits only change the flow's working selection, which is what
    ``confirm()`` prices and hands to execution.
    """

    def __init__(
        self,
        turn_id: str,
        action: PendingAction,
        resolver: ParameterResolver,
        *,
        in_flight: Callable[[], bool] = lambda: False,
    ) -> None:
        self.turn_id = turn_id
        self.proposed = action
        self._resolver = resolver
        self._in_flight = in_flight
        self._state = StateManager(ActionState.PROPOSED)
        self._params: ActionParams = resolver.resolve(action)
        self.confirmed: PendingAction | None = None

    @property
    def state(self) -> ActionState:
        return self._state.state

    @property
    def params(self) -> ActionParams:
        return self._params

    @property
    def estimated_credits(self) -> float:
        """Cost of the current selection; what ``confirm()`` will charge."""
        return costs.estimate(self._params)

    def options(self) -> dict[str, tuple[Any, ...]]:
        """Editable parameter names mapped to their ordered legal values."""
        action_type = self.proposed.type
        return {
            name: self._resolver.legal_values(action_type, name)
            for name in self._resolver.editable_params(action_type)
        }

    def selection(self) -> dict[str, Any]:
        return {
            name: self._resolver.current_value(self._params, name)
            for name in self._resolver.editable_params(self.proposed.type)
        }

    def select(self, name: str, value: Any) -> ActionParams:
        """Edit one parameter while the action is still proposed."""
        self._require(ActionState.PROPOSED, "edit")
        self._params = self._resolver.select(
            self.proposed.type, self._params, name, value
        )
        return self._params

    def preview(self, overrides: Mapping[str, Any] | None = None) -> PendingAction:
        """Return the action ``confirm()`` would produce, without confirming."""
        self._require(ActionState.PROPOSED, "confirm")
        params = self._params
        for name, value in (overrides or {}).items():
            params = self._resolver.select(self.proposed.type, params, name, value)
        self._resolver.validate(self.proposed.type, params)
        return self.proposed.with_params(params, costs.estimate(params))

    async def confirm(self, overrides: Mapping[str, Any] | None = None) -> PendingAction:
        """Freeze the selection and reprice it.

        Rejected when another action is executing, when the action has left
        ``PROPOSED``, or when a required parameter is missing.
        """
        if self._in_flight():
            raise ActionInFlightError("Another generation is already running.")
        action = self.preview(overrides)
        params = action.params
        credits = action.estimated_credits
        if not await self._state.transition_if(
            ActionState.PROPOSED, ActionState.CONFIRMED
        ):
            raise InvalidTransitionError(
                f"Action is {self.state.value}; it can no longer be confirmed."
            )
        self._params = params
        self.confirmed = self.proposed.with_params(params, credits)
        LOGGER.info(
            "flow.confirmed",
            extra={
                "event": "flow.confirmed",
                "turn_id": self.turn_id,
                "action_type": self.proposed.type.value,
                "credits": credits,
            },
        )
        return self.confirmed

    async def begin_execution(self) -> None:
        await self._state.transition_to(ActionState.EXECUTING)

    async def complete(self) -> None:
        await self._state.transition_to(ActionState.COMPLETE)

    async def fail(self) -> None:
        await self._state.transition_to(ActionState.FAILED)

    async def cancel(self) -> None:
        if not await self._state.transition_if(
            ActionState.PROPOSED, ActionState.CANCELLED
        ):
            raise InvalidTransitionError(
                f"Action is {self.state.value}; it can no longer be cancelled."
            )
        LOGGER.info(
            "flow.cancelled",
            extra={"event": "flow.cancelled", "turn_id": self.turn_id},
        )

    def _require(self, expected: ActionState, verb: str) -> None:
        if self.state is not expected:
            raise InvalidTransitionError(
                f"Cannot {verb} an action in state {self.state.value}."
            )
