"""Legal parameter domains and side-effect-free parameter selection."""

from __future__ import annotations

from dataclasses import replace
import logging
from typing import Any

from . import catalog
from .exceptions import ActionValidationError
from .models import (
    ActionParams,
    ActionType,
    ImageParams,
    MusicParams,
    PendingAction,
    VideoParams,
)

LOGGER = logging.getLogger(__name__)

PARAM_MODEL = "model"
PARAM_ASPECT_RATIO = "aspect_ratio"
PARAM_DURATION = "duration"

_EDITABLE: dict[ActionType, tuple[str, ...]] = {
    ActionType.GENERATE_IMAGE: (PARAM_MODEL, PARAM_ASPECT_RATIO),
    ActionType.GENERATE_VIDEO: (PARAM_MODEL, PARAM_DURATION),
    ActionType.GENERATE_MUSIC: (PARAM_DURATION,),
}


def _coerce_seconds(value: Any) -> int:
    if isinstance(value, bool):
        raise ActionValidationError(f"Invalid duration {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip().lower().removesuffix("s")
    try:
        return int(text)
    except ValueError:
        raise ActionValidationError(f"Invalid duration {value!r}") from None


class ParameterResolver:
    """Expose the legal domain per action type and derive new selections.

    Selections never touch the ``PendingAction`` stored on a turn; every
    call returns a fresh params object.
    """

    def legal_models(self, action_type: ActionType) -> tuple[str, ...]:
        if action_type is ActionType.GENERATE_IMAGE:
            return tuple(model.id for model in catalog.IMAGE_MODELS)
        if action_type is ActionType.GENERATE_VIDEO:
            return tuple(model.id for model in catalog.VIDEO_MODELS)
        return ()

    def editable_params(self, action_type: ActionType) -> tuple[str, ...]:
        return _EDITABLE[action_type]

    def legal_values(self, action_type: ActionType, name: str) -> tuple[Any, ...]:
        """Return the ordered legal values of one editable parameter."""
        if name not in _EDITABLE[action_type]:
            raise ActionValidationError(
                f"{action_type.value} has no editable parameter {name!r}"
            )
        if name == PARAM_MODEL:
            return self.legal_models(action_type)
        if name == PARAM_ASPECT_RATIO:
            return tuple(ratio.id for ratio in catalog.ASPECT_RATIOS)
        if action_type is ActionType.GENERATE_VIDEO:
            return catalog.VIDEO_DURATIONS
        return tuple(tier.seconds for tier in catalog.MUSIC_DURATIONS)

    def _pick(self, action_type: ActionType, name: str, proposed: Any) -> Any:
        legal = self.legal_values(action_type, name)
        if proposed in legal:
            return proposed
        if proposed is not None:
            LOGGER.info(
                "resolver.default.applied",
                extra={
                    "event": "resolver.default.applied",
                    "action_type": action_type.value,
                    "param": name,
                    "proposed": str(proposed),
                    "selected": str(legal[0]),
                },
            )
        return legal[0]

    def resolve(self, action: PendingAction) -> ActionParams:
        """Initial selection: the proposed value when legal, else the first legal value."""
        params = action.params
        if isinstance(params, ImageParams):
            return replace(
                params,
                model=self._pick(action.type, PARAM_MODEL, params.model),
                aspect_ratio=self._pick(
                    action.type, PARAM_ASPECT_RATIO, params.aspect_ratio
                ),
            )
        if isinstance(params, VideoParams):
            return replace(
                params,
                model=self._pick(action.type, PARAM_MODEL, params.model),
                duration=self._pick(action.type, PARAM_DURATION, params.duration),
            )
        if isinstance(params, MusicParams):
            return replace(
                params,
                duration_seconds=self._pick(
                    action.type, PARAM_DURATION, params.duration_seconds
                ),
            )
        raise TypeError(f"Unsupported parameter type: {type(params).__name__}")

    def select(
        self, action_type: ActionType, params: ActionParams, name: str, value: Any
    ) -> ActionParams:
        """Return new params with ``name`` set to ``value`` after checking legality."""
        if action_type is ActionType.GENERATE_MUSIC and name == PARAM_DURATION:
            value = _coerce_seconds(value)
        elif isinstance(value, str):
            value = value.strip()
        legal = self.legal_values(action_type, name)
        if value not in legal:
            allowed = ", ".join(str(item) for item in legal)
            raise ActionValidationError(
                f"Invalid {name} {value!r} for {action_type.value}. Allowed: {allowed}"
            )
        if isinstance(params, MusicParams):
            return replace(params, duration_seconds=value)
        if name == PARAM_MODEL:
            return replace(params, model=value)
        if name == PARAM_ASPECT_RATIO:
            return replace(params, aspect_ratio=value)
        return replace(params, duration=value)

    def validate(self, action_type: ActionType, params: ActionParams) -> None:
        """Check that every required parameter is present and legal."""
        if not params.prompt.strip():
            raise ActionValidationError("A prompt is required.")
        for name in _EDITABLE[action_type]:
            current = self.current_value(params, name)
            if current is None:
                raise ActionValidationError(
                    f"{action_type.value} requires a {name.replace('_', ' ')}."
                )
            if current not in self.legal_values(action_type, name):
                raise ActionValidationError(f"Invalid {name} {current!r}.")

    @staticmethod
    def current_value(params: ActionParams, name: str) -> Any:
        if isinstance(params, MusicParams):
            return params.duration_seconds if name == PARAM_DURATION else None
        return getattr(params, name, None)
