"""Top-level package for genchat."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .attachments import AttachmentStore
    from .config import ensure_config_dir, load_config
    from .conversation_log import ConversationLog
    from .costs import estimate
    from .exceptions import (
        ActionInFlightError,
        ActionValidationError,
        AttachmentRejectedError,
        ConfigValidationError,
        CreditRefreshError,
        GenChatError,
        InsufficientCreditsError,
        InvalidTransitionError,
        ProviderResultError,
        ServiceError,
        ServiceTransportError,
    )
    from .flow import ActionConfirmationFlow
    from .ledger import CreditLedgerSync, CreditStore
    from .orchestrator import ConversationOrchestrator
    from .resolver import ParameterResolver

__all__ = [
    "ActionConfirmationFlow",
    "ActionInFlightError",
    "ActionValidationError",
    "AttachmentRejectedError",
    "AttachmentStore",
    "ConfigValidationError",
    "ConversationLog",
    "ConversationOrchestrator",
    "CreditLedgerSync",
    "CreditRefreshError",
    "CreditStore",
    "GenChatError",
    "InsufficientCreditsError",
    "InvalidTransitionError",
    "ParameterResolver",
    "ProviderResultError",
    "ServiceError",
    "ServiceTransportError",
    "ensure_config_dir",
    "estimate",
    "load_config",
]

_LAZY: dict[str, str] = {
    "AttachmentStore": ".attachments",
    "ensure_config_dir": ".config",
    "load_config": ".config",
    "ConversationLog": ".conversation_log",
    "estimate": ".costs",
    "ActionConfirmationFlow": ".flow",
    "CreditLedgerSync": ".ledger",
    "CreditStore": ".ledger",
    "ConversationOrchestrator": ".orchestrator",
    "ParameterResolver": ".resolver",
}


def __getattr__(name: str) -> Any:
    """Lazily import symbols so that importing the package stays cheap."""
    if name in _LAZY:
        from importlib import import_module

        return getattr(import_module(_LAZY[name], __name__), name)
    if name in __all__:
        from . import exceptions

        return getattr(exceptions, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
