"""httpx implementations of the interpretation, generation and credit services."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import (
    CreditRefreshError,
    GenChatError,
    InsufficientCreditsError,
    ProviderResultError,
    ServiceError,
    ServiceTransportError,
)
from .models import ActionType, HistoryEntry, PendingAction
from .services import ChatContext, GenerationResult, InterpretResult

LOGGER = logging.getLogger(__name__)

MESSAGE_PATH = "/api/chat-assistant/message"
GENERATE_PATH = "/api/chat-assistant/generate"
USER_PATH = "/api/users/{identifier}"

_TRANSIENT_STATUS = {408, 425, 429}


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    success: bool = True
    error: str | None = None


class MessageResponse(_Envelope):
    response: str = ""
    action: dict[str, Any] | None = None


class GeneratedContentPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str | None = None
    urls: list[str] = Field(default_factory=list)
    credits_used: float | None = Field(default=None, alias="creditsUsed")
    remaining_credits: float | None = Field(default=None, alias="remainingCredits")


class GenerateResponse(_Envelope):
    generated_content: GeneratedContentPayload | None = Field(
        default=None, alias="generatedContent"
    )


class UserPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    credits: float | None = None


class UserResponse(_Envelope):
    user: UserPayload | None = None
    credits: float | None = None


def _is_insufficient(message: str) -> bool:
    return "insufficient" in message.lower()


class BackendClient:
    """Shared httpx client for the backend plus its error mapping."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        retries: int = 2,
        retry_backoff_seconds: float = 0.5,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.retries = retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        retry: bool = False,
        timeout: Any = httpx.USE_CLIENT_DEFAULT,
    ) -> dict[str, Any]:
        """Send one request and return the decoded JSON object.

        With ``retry`` set, transport failures are retried with linear backoff.
        """
        attempts = self.retries + 1 if retry else 1
        attempt = 0
        while True:
            try:
                return await self._request_once(
                    method, path, json=json, params=params, timeout=timeout
                )
            except asyncio.CancelledError:
                LOGGER.info(
                    "service.request.cancelled",
                    extra={"event": "service.request.cancelled", "path": path},
                )
                raise
            except ServiceTransportError as exc:
                LOGGER.warning(
                    "service.request.retry",
                    extra={
                        "event": "service.request.retry",
                        "path": path,
                        "attempt": attempt + 1,
                        "error_type": exc.__class__.__name__,
                    },
                )
                attempt += 1
                if attempt >= attempts:
                    raise
                await asyncio.sleep(self.retry_backoff_seconds * attempt)

    async def _request_once(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None,
        params: dict[str, Any] | None,
        timeout: Any,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(
                method, path, json=json, params=params, timeout=timeout
            )
        except Exception as exc:  # noqa: BLE001 - external transport can fail in many ways.
            raise self._map_exception(exc) from exc

        body = self._decode(response)
        if response.is_success:
            if body is None:
                raise ProviderResultError(
                    f"Unexpected response from {path}: body is not a JSON object."
                )
            return body

        message = (body or {}).get("error") or (body or {}).get("message")
        message = str(message) if message else f"HTTP {response.status_code} from {path}"
        if response.status_code == 402 or _is_insufficient(message):
            raise InsufficientCreditsError(message)
        if response.status_code in _TRANSIENT_STATUS or response.status_code >= 500:
            raise ServiceTransportError(message)
        raise ServiceError(message)

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any] | None:
        try:
            body = response.json()
        except ValueError:
            return None
        return body if isinstance(body, dict) else None

    def _map_exception(self, exc: Exception) -> GenChatError:
        if isinstance(exc, GenChatError):
            return exc
        if isinstance(exc, httpx.TimeoutException):
            return ServiceTransportError(f"Request to {self.base_url} timed out.")
        if isinstance(exc, (httpx.ConnectError, httpx.NetworkError)):
            return ServiceTransportError(f"Unable to reach {self.base_url}.")
        if isinstance(exc, httpx.TransportError):
            return ServiceTransportError(f"Transport failure talking to {self.base_url}: {exc}")
        return ServiceError(f"Request to {self.base_url} failed: {exc}")


def _check_envelope(envelope: _Envelope, fallback: str) -> None:
    if envelope.success:
        return
    message = envelope.error or fallback
    if _is_insufficient(message):
        raise InsufficientCreditsError(message)
    raise ServiceError(message)


class HttpInterpretationService:
    """Ask the chat assistant to interpret one user message."""

    def __init__(self, backend: BackendClient) -> None:
        self._backend = backend

    async def interpret(
        self,
        text: str,
        history: Sequence[HistoryEntry],
        context: ChatContext,
        attachments: Sequence[str] | None,
        model_id: str,
    ) -> InterpretResult:
        payload: dict[str, Any] = {
            "message": text,
            "history": [entry.to_payload() for entry in history],
            "context": context.to_payload(),
            "model": model_id,
        }
        if attachments:
            payload["referenceImages"] = list(attachments)
        body = await self._backend.request("POST", MESSAGE_PATH, json=payload, retry=True)
        try:
            parsed = MessageResponse.model_validate(body)
        except ValidationError as exc:
            raise ProviderResultError(f"Malformed assistant response: {exc}") from exc
        _check_envelope(parsed, "Failed to process message")
        action = PendingAction.from_payload(parsed.action) if parsed.action else None
        return InterpretResult(message=parsed.response, error=parsed.error, action=action)


class HttpGenerationService:
    """Run one kind of generation; never retried automatically."""

    def __init__(self, backend: BackendClient, action_type: ActionType) -> None:
        self._backend = backend
        self.action_type = action_type

    async def invoke(self, action: PendingAction, context: ChatContext) -> GenerationResult:
        if action.type is not self.action_type:
            raise ServiceError(
                f"{self.action_type.value} service cannot run {action.type.value}."
            )
        body = await self._backend.request(
            "POST",
            GENERATE_PATH,
            json={"action": action.to_payload(), "context": context.to_payload()},
            timeout=None,
        )
        try:
            parsed = GenerateResponse.model_validate(body)
        except ValidationError as exc:
            raise ProviderResultError(f"Malformed generation response: {exc}") from exc
        _check_envelope(parsed, f"Failed to generate {action.type.media_kind.value}")
        content = parsed.generated_content or GeneratedContentPayload()
        return GenerationResult(
            urls=tuple(content.urls),
            credits_used=content.credits_used,
            remaining_credits=content.remaining_credits,
        )


class HttpCreditRefreshService:
    def __init__(self, backend: BackendClient) -> None:
        self._backend = backend

    async def refresh(self, identifier: str) -> float:
        body = await self._backend.request(
            "GET",
            USER_PATH.format(identifier=identifier),
            params={"skipNFTs": "true"},
            retry=True,
        )
        try:
            parsed = UserResponse.model_validate(body)
        except ValidationError as exc:
            raise CreditRefreshError(f"Malformed user response: {exc}") from exc
        if not parsed.success:
            raise CreditRefreshError(parsed.error or "Failed to fetch credits")
        credits = parsed.user.credits if parsed.user is not None else None
        if credits is None:
            credits = parsed.credits
        if credits is None:
            raise CreditRefreshError("User response carried no credit balance.")
        return float(credits)


@dataclass
class ServiceBundle:
    backend: BackendClient
    interpretation: HttpInterpretationService
    generation: dict[ActionType, HttpGenerationService]
    refresh: HttpCreditRefreshService

    async def aclose(self) -> None:
        await self.backend.aclose()


def build_services(
    service_config: dict[str, Any], client: httpx.AsyncClient | None = None
) -> ServiceBundle:
    """Wire all HTTP services from the ``[service]`` config section."""
    backend = BackendClient(
        str(service_config.get("base_url", "http://localhost:3001")),
        timeout=float(service_config.get("request_timeout_seconds", 30.0)),
        retries=int(service_config.get("retries", 2)),
        retry_backoff_seconds=float(service_config.get("retry_backoff_seconds", 0.5)),
        client=client,
    )
    return ServiceBundle(
        backend=backend,
        interpretation=HttpInterpretationService(backend),
        generation={
            action_type: HttpGenerationService(backend, action_type)
            for action_type in ActionType
        },
        refresh=HttpCreditRefreshService(backend),
    )
