"""Configuration loading and validation for genchat."""

from __future__ import annotations

from copy import deepcopy
import logging
import os
from pathlib import Path
import tomllib
from typing import Any
from urllib.parse import urlparse

from platformdirs import user_config_path
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from . import catalog
from .attachments import MAX_IMAGE_BYTES, MAX_SLOTS
from .exceptions import ConfigValidationError

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = user_config_path("genchat")
CONFIG_PATH = CONFIG_DIR / "config.toml"

VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}

DEFAULT_WELCOME = (
    "Welcome. Describe an image, video or track and I will prepare it for you."
)


def _required_string(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("Expected a string value.")
    normalized = value.strip()
    if not normalized:
        raise ValueError("String value must not be empty.")
    return normalized


class AppConfig(BaseModel):
    """Console title and the greeting shown on an empty conversation."""

    title: str = "GenChat"
    welcome_message: str = DEFAULT_WELCOME

    @field_validator("title", mode="before")
    @classmethod
    def _validate_title(cls, value: Any) -> str:
        return _required_string(value)

    @field_validator("welcome_message", mode="before")
    @classmethod
    def _normalize_welcome(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("welcome_message must be a string.")
        return value.strip()


class ServiceConfig(BaseModel):
    """Backend endpoint and request policy."""

    base_url: str = "http://localhost:3001"
    request_timeout_seconds: float = Field(default=30.0, gt=0, le=3600)
    retries: int = Field(default=2, ge=0, le=10)
    retry_backoff_seconds: float = Field(default=0.5, ge=0, le=60)
    history_limit: int = Field(default=20, ge=0, le=1000)

    @field_validator("base_url", mode="before")
    @classmethod
    def _validate_base_url(cls, value: Any) -> str:
        normalized = _required_string(value).rstrip("/")
        parsed = urlparse(normalized)
        if parsed.scheme.lower() not in {"http", "https"}:
            raise ValueError("service.base_url must use http or https scheme.")
        if not parsed.hostname:
            raise ValueError("service.base_url must include a hostname.")
        return normalized


class AssistantConfig(BaseModel):
    chat_model: str = catalog.DEFAULT_CHAT_MODEL
    timeout_seconds: float = Field(default=60.0, ge=0, le=3600)

    @field_validator("chat_model", mode="before")
    @classmethod
    def _validate_chat_model(cls, value: Any) -> str:
        normalized = _required_string(value)
        known = {model.id for model in catalog.CHAT_MODELS}
        if normalized not in known:
            raise ValueError(f"Unknown chat model {normalized!r}.")
        return normalized


class GenerationConfig(BaseModel):
    """``timeout_seconds = 0`` waits for the backend indefinitely."""

    timeout_seconds: float = Field(default=600.0, ge=0, le=86_400)


class AttachmentsConfig(BaseModel):
    max_slots: int = Field(default=MAX_SLOTS, ge=1, le=MAX_SLOTS)
    max_image_bytes: int = Field(default=MAX_IMAGE_BYTES, ge=1, le=MAX_IMAGE_BYTES)


class SessionConfig(BaseModel):
    """Identity used by the console front end."""

    identifier: str = ""
    initial_credits: float = Field(default=0.0, ge=0)

    @field_validator("identifier", mode="before")
    @classmethod
    def _normalize_identifier(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("identifier must be a string.")
        return value.strip()


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = "~/.local/state/genchat/app.log"

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("log_file_path must be a string.")
        return _required_string(value)


class Config(BaseModel):
    """All sections; each one is validated and defaulted on its own."""

    model_config = ConfigDict(populate_by_name=True)
    app: AppConfig = AppConfig()
    service: ServiceConfig = ServiceConfig()
    assistant: AssistantConfig = AssistantConfig()
    generation: GenerationConfig = GenerationConfig()
    attachments: AttachmentsConfig = AttachmentsConfig()
    session: SessionConfig = SessionConfig()
    logging: LoggingConfig = LoggingConfig()


DEFAULT_CONFIG: dict[str, dict[str, Any]] = Config().model_dump(by_alias=True)


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    directory = config_dir or CONFIG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create config directory %s: %s", directory, exc)
    return directory


def _overlay(section: str, user_values: Any) -> dict[str, Any]:
    """Defaults of ``section`` with the user's keys layered on top."""
    values = deepcopy(DEFAULT_CONFIG[section])
    if isinstance(user_values, dict):
        values.update(user_values)
    elif user_values is not None:
        LOGGER.warning("Config section [%s] is not a table; ignoring it.", section)
    return values


def _validate_section(section: str, values: dict[str, Any]) -> dict[str, Any]:
    model = Config.model_fields[section].annotation
    try:
        return model.model_validate(values).model_dump(by_alias=True)
    except ValidationError as exc:
        LOGGER.warning(
            "Invalid config section [%s], using its defaults: %s", section, exc
        )
        return deepcopy(DEFAULT_CONFIG[section])


def _read_toml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    if os.name == "posix":
        try:
            path.chmod(0o600)
        except OSError as exc:
            LOGGER.warning("Unable to enforce 0600 permissions for %s: %s", path, exc)
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
        LOGGER.warning("Failed to parse config at %s: %s", path, exc)
        return {}


def load_config(config_path: Path | None = None) -> dict[str, dict[str, Any]]:
    """Read ``config.toml`` and return every section validated.

    A section with an invalid value falls back to its defaults as a whole;
    the other sections keep the user's values. ``config_path`` serves tests
    and the ``--config`` flag.
    """
    path = config_path or CONFIG_PATH
    if config_path is None:
        ensure_config_dir(path.parent)
    raw = _read_toml(path)

    unknown = sorted(set(raw) - set(DEFAULT_CONFIG))
    if unknown:
        LOGGER.warning("Ignoring unknown config sections: %s", ", ".join(unknown))

    try:
        return {
            section: _validate_section(section, _overlay(section, raw.get(section)))
            for section in DEFAULT_CONFIG
        }
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc
