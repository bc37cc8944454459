"""Domain exception hierarchy for the generation chat core."""

from __future__ import annotations


class GenChatError(RuntimeError):
    """Base class for all domain-level errors."""


class ActionValidationError(GenChatError):
    """Raised when input or an action parameter fails local validation."""


class AttachmentRejectedError(ActionValidationError):
    """Raised when a file cannot become an attachment slot."""


class ActionInFlightError(GenChatError):
    """Raised when a second action is confirmed while one is executing."""


class InvalidTransitionError(GenChatError):
    """Raised when an action lifecycle transition is not allowed."""


class InsufficientCreditsError(GenChatError):
    """Raised when the balance cannot cover an action's cost."""


class ServiceError(GenChatError):
    """Raised when a remote collaborator reports a failure."""


class ServiceTransportError(ServiceError):
    """Raised when a remote collaborator cannot be reached or times out."""


class ProviderResultError(ServiceError):
    """Raised when a generation succeeds but returns no usable result."""


class CreditRefreshError(ServiceError):
    """Raised when the authoritative balance cannot be fetched."""


class ConfigValidationError(GenChatError):
    """Raised when configuration cannot be validated safely."""
