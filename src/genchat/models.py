"""Conversation turns, pending actions, and generated content."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
import random
import string
import time
from typing import Any, Union

from .exceptions import (
    ActionValidationError,
    InsufficientCreditsError,
    ServiceTransportError,
)


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    MUSIC = "music"


class ActionType(str, Enum):
    """Discriminant of a pending action and of its parameter shape."""

    GENERATE_IMAGE = "generate_image"
    GENERATE_VIDEO = "generate_video"
    GENERATE_MUSIC = "generate_music"

    @property
    def media_kind(self) -> MediaKind:
        return MediaKind(self.value.removeprefix("generate_"))


class ErrorKind(str, Enum):
    """Failure taxonomy recorded next to a turn's error text."""

    VALIDATION = "validation"
    TRANSPORT = "transport"
    PROVIDER = "provider"
    INSUFFICIENT_CREDIT = "insufficient_credit"


# Wire keys the typed parameter classes own; everything else is pass-through.
_REFERENCE_KEYS = frozenset({"referenceImage", "referenceImages"})
_IMAGE_KEYS = frozenset({"prompt", "model", "imageModel", "imageSize"}) | _REFERENCE_KEYS
_VIDEO_KEYS = frozenset({"prompt", "model", "videoModel", "duration"}) | _REFERENCE_KEYS
_MUSIC_KEYS = frozenset({"prompt", "musicDuration"}) | _REFERENCE_KEYS


def _reference_images_from(raw: dict[str, Any]) -> tuple[str, ...]:
    images = raw.get("referenceImages")
    if isinstance(images, list):
        return tuple(item for item in images if isinstance(item, str) and item)
    single = raw.get("referenceImage")
    if isinstance(single, str) and single:
        return (single,)
    return ()


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _base_payload(
    prompt: str, reference_images: tuple[str, ...], extras: dict[str, Any]
) -> dict[str, Any]:
    payload: dict[str, Any] = dict(extras)
    payload["prompt"] = prompt
    if reference_images:
        payload["referenceImage"] = reference_images[0]
        if len(reference_images) > 1:
            payload["referenceImages"] = list(reference_images)
    return payload


@dataclass(frozen=True)
class ImageParams:
    prompt: str
    model: str | None = None
    aspect_ratio: str | None = None
    reference_images: tuple[str, ...] = ()
    extras: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload = _base_payload(self.prompt, self.reference_images, self.extras)
        if self.model is not None:
            payload["model"] = self.model
        if self.aspect_ratio is not None:
            payload["imageSize"] = self.aspect_ratio
        return payload

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> ImageParams:
        return cls(
            prompt=str(raw.get("prompt") or "").strip(),
            model=_optional_str(raw.get("model")) or _optional_str(raw.get("imageModel")),
            aspect_ratio=_optional_str(raw.get("imageSize")),
            reference_images=_reference_images_from(raw),
            extras={k: v for k, v in raw.items() if k not in _IMAGE_KEYS},
        )


@dataclass(frozen=True)
class VideoParams:
    prompt: str
    model: str | None = None
    duration: str | None = None
    reference_images: tuple[str, ...] = ()
    extras: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload = _base_payload(self.prompt, self.reference_images, self.extras)
        if self.model is not None:
            payload["model"] = self.model
        if self.duration is not None:
            payload["duration"] = self.duration
        return payload

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> VideoParams:
        return cls(
            prompt=str(raw.get("prompt") or "").strip(),
            model=_optional_str(raw.get("model")) or _optional_str(raw.get("videoModel")),
            duration=_optional_str(raw.get("duration")),
            reference_images=_reference_images_from(raw),
            extras={k: v for k, v in raw.items() if k not in _VIDEO_KEYS},
        )


@dataclass(frozen=True)
class MusicParams:
    prompt: str
    duration_seconds: int | None = None
    reference_images: tuple[str, ...] = ()
    extras: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload = _base_payload(self.prompt, self.reference_images, self.extras)
        if self.duration_seconds is not None:
            payload["musicDuration"] = self.duration_seconds
        return payload

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> MusicParams:
        seconds = raw.get("musicDuration")
        try:
            duration = int(seconds) if seconds is not None else None
        except (TypeError, ValueError):
            duration = None
        return cls(
            prompt=str(raw.get("prompt") or "").strip(),
            duration_seconds=duration,
            reference_images=_reference_images_from(raw),
            extras={k: v for k, v in raw.items() if k not in _MUSIC_KEYS},
        )


ActionParams = Union[ImageParams, VideoParams, MusicParams]

PARAMS_BY_TYPE: dict[ActionType, type] = {
    ActionType.GENERATE_IMAGE: ImageParams,
    ActionType.GENERATE_VIDEO: VideoParams,
    ActionType.GENERATE_MUSIC: MusicParams,
}


@dataclass(frozen=True)
class PendingAction:
    """An assistant-proposed generation request awaiting confirmation."""

    type: ActionType
    description: str
    params: ActionParams
    estimated_credits: float = 0.0

    def __post_init__(self) -> None:
        expected = PARAMS_BY_TYPE[self.type]
        if not isinstance(self.params, expected):
            raise ActionValidationError(
                f"{self.type.value} requires {expected.__name__}, "
                f"got {type(self.params).__name__}"
            )

    def with_params(self, params: ActionParams, estimated_credits: float) -> PendingAction:
        """Return a copy carrying new params; the original is never touched."""
        return replace(self, params=params, estimated_credits=estimated_credits)

    def to_payload(self) -> dict[str, Any]:
        return {
            "action": self.type.value,
            "params": self.params.to_payload(),
            "estimatedCredits": self.estimated_credits,
            "description": self.description,
        }

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> PendingAction:
        """Build an action from the backend's ``{action, params, ...}`` shape."""
        type_name = raw.get("action") or raw.get("type")
        try:
            action_type = ActionType(type_name)
        except ValueError as exc:
            raise ActionValidationError(f"Unknown action type {type_name!r}") from exc
        raw_params = raw.get("params")
        if not isinstance(raw_params, dict):
            raw_params = {}
        params = PARAMS_BY_TYPE[action_type].from_payload(raw_params)
        try:
            estimated = float(raw.get("estimatedCredits") or 0.0)
        except (TypeError, ValueError):
            estimated = 0.0
        return cls(
            type=action_type,
            description=str(raw.get("description") or "").strip(),
            params=params,
            estimated_credits=estimated,
        )


@dataclass(frozen=True)
class GeneratedContent:
    """Result of a completed generation, attached to the requesting turn."""

    type: MediaKind
    urls: tuple[str, ...]
    credits_used: float | None = None
    remaining_credits: float | None = None
    prompt: str = ""
    model: str | None = None
    is_360: bool = False


@dataclass
class Turn:
    """One entry of the conversation log.

    Mutated only by ``ConversationLog`` and only while ``is_loading`` is true.
    """

    id: str
    role: Role
    content: str
    timestamp: str
    is_loading: bool = False
    error: str | None = None
    error_kind: ErrorKind | None = None
    pending_action: PendingAction | None = None
    generated_content: GeneratedContent | None = None

    @property
    def is_terminal(self) -> bool:
        if self.is_loading:
            return False
        return self.generated_content is not None or self.error is not None


@dataclass(frozen=True)
class HistoryEntry:
    role: str
    content: str
    has_generation: bool

    def to_payload(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "hasGeneration": self.has_generation,
        }


def error_kind_for(exc: BaseException) -> ErrorKind:
    """Map a domain exception onto the turn-level failure taxonomy."""
    if isinstance(exc, InsufficientCreditsError):
        return ErrorKind.INSUFFICIENT_CREDIT
    if isinstance(exc, ActionValidationError):
        return ErrorKind.VALIDATION
    if isinstance(exc, ServiceTransportError):
        return ErrorKind.TRANSPORT
    return ErrorKind.PROVIDER


_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_turn_id() -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"msg_{int(time.time() * 1000)}_{suffix}"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()
