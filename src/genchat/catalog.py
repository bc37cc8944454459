"""Legal parameter domains and price tables for each generation type."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ImageModel:
    """An image model and its flat per-image price."""

    id: str
    name: str
    description: str
    credits: float


@dataclass(frozen=True)
class VideoModel:
    """A video model with its precomputed price per duration label."""

    id: str
    name: str
    description: str
    credits_per_second: float
    duration_costs: dict[str, float]


@dataclass(frozen=True)
class AspectRatio:
    id: str
    label: str
    description: str


@dataclass(frozen=True)
class MusicDuration:
    seconds: int
    label: str
    credits: int


@dataclass(frozen=True)
class ChatModel:
    id: str
    name: str


IMAGE_MODELS: tuple[ImageModel, ...] = (
    ImageModel("flux", "FLUX", "Fast & versatile", 0.5),
    ImageModel("flux-2", "FLUX 2", "Photorealistic + text", 0.65),
    ImageModel("nano-banana-pro", "Nano Banana", "Highest quality", 0.7),
)

ASPECT_RATIOS: tuple[AspectRatio, ...] = (
    AspectRatio("square", "1:1", "Square"),
    AspectRatio("landscape_16_9", "16:9", "Widescreen"),
    AspectRatio("landscape_4_3", "4:3", "Standard"),
    AspectRatio("portrait_16_9", "9:16", "Vertical"),
    AspectRatio("portrait_4_3", "3:4", "Portrait"),
    AspectRatio("ultra_wide", "21:9", "Ultrawide"),
)

VIDEO_DURATIONS: tuple[str, ...] = ("4s", "6s", "8s")

VIDEO_MODELS: tuple[VideoModel, ...] = (
    VideoModel(
        "ltx",
        "LTX-2",
        "Fast & affordable",
        1.0,
        {"4s": 4.0, "6s": 6.0, "8s": 8.0},
    ),
    VideoModel(
        "veo",
        "Veo 3.1",
        "Cinematic quality",
        2.2,
        {"4s": 8.8, "6s": 13.2, "8s": 17.6},
    ),
)

# One credit per started minute, minimum one.
MUSIC_DURATIONS: tuple[MusicDuration, ...] = (
    MusicDuration(15, "15s", 1),
    MusicDuration(30, "30s", 1),
    MusicDuration(60, "1min", 1),
    MusicDuration(120, "2min", 2),
    MusicDuration(180, "3min", 3),
)

CHAT_MODELS: tuple[ChatModel, ...] = (
    ChatModel("claude-sonnet-4-5", "Sonnet 4.5"),
    ChatModel("claude-haiku-4-5", "Haiku 4.5"),
    ChatModel("claude-opus-4-6", "Opus 4.6"),
)

DEFAULT_CHAT_MODEL = CHAT_MODELS[0].id

# Models that produce equirectangular 360 panoramas.
PANORAMA_MODELS: frozenset[str] = frozenset({"nano-banana-pro"})


def image_model(model_id: str) -> ImageModel | None:
    for model in IMAGE_MODELS:
        if model.id == model_id:
            return model
    return None


def video_model(model_id: str) -> VideoModel | None:
    for model in VIDEO_MODELS:
        if model.id == model_id:
            return model
    return None


def music_duration(seconds: int) -> MusicDuration | None:
    for tier in MUSIC_DURATIONS:
        if tier.seconds == seconds:
            return tier
    return None
