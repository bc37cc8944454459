"""Pure credit cost lookups for every action type."""

from __future__ import annotations

from . import catalog
from .exceptions import ActionValidationError
from .models import ActionParams, ImageParams, MusicParams, VideoParams


def round_credits(value: float) -> float:
    """Round a credit amount to the two decimals the ledger works in."""
    return round(float(value), 2)


def image_cost(model: str) -> float:
    """Flat per-image price; aspect ratio never affects it."""
    entry = catalog.image_model(model)
    if entry is None:
        raise ActionValidationError(f"Unknown image model {model!r}")
    return round_credits(entry.credits)


def video_cost(duration: str, model: str) -> float:
    """Price keyed by (duration, model); each model has its own table."""
    entry = catalog.video_model(model)
    if entry is None:
        raise ActionValidationError(f"Unknown video model {model!r}")
    try:
        return round_credits(entry.duration_costs[duration])
    except KeyError:
        raise ActionValidationError(
            f"Unsupported video duration {duration!r} for model {model!r}"
        ) from None


def music_cost(duration_seconds: int) -> int:
    tier = catalog.music_duration(duration_seconds)
    if tier is None:
        raise ActionValidationError(f"Unsupported music duration {duration_seconds!r}")
    return tier.credits


def estimate(params: ActionParams) -> float:
    """Cost of an action from its current selections.

    Raises ``ActionValidationError`` when a priced parameter is missing.
    """
    if isinstance(params, ImageParams):
        if params.model is None:
            raise ActionValidationError("Image generation requires a model.")
        return image_cost(params.model)
    if isinstance(params, VideoParams):
        if params.model is None:
            raise ActionValidationError("Video generation requires a model.")
        if params.duration is None:
            raise ActionValidationError("Video generation requires a duration.")
        return video_cost(params.duration, params.model)
    if isinstance(params, MusicParams):
        if params.duration_seconds is None:
            raise ActionValidationError("Music generation requires a duration.")
        return float(music_cost(params.duration_seconds))
    raise TypeError(f"Unsupported parameter type: {type(params).__name__}")
