"""Displayed credit balance with optimistic and authoritative writers."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
import logging
from typing import Any

from .costs import round_credits
from .events import CREDITS_CHANGED, Event, EventBus
from .services import CreditRefreshService, SessionProvider

LOGGER = logging.getLogger(__name__)


class BalanceSource(str, Enum):
    INITIAL = "initial"
    OPTIMISTIC = "optimistic"
    AUTHORITATIVE = "authoritative"


class CreditStore:
    """Single-value cell holding the displayed balance, floored at zero.

    Only ``CreditLedgerSync`` writes to it; everyone else reads ``value`` or
    subscribes to changes.
    """

    def __init__(self, initial: float = 0.0, bus: EventBus | None = None) -> None:
        self._bus = bus or EventBus()
        self._value = max(0.0, round_credits(initial))
        self._source = BalanceSource.INITIAL

    @property
    def value(self) -> float:
        return self._value

    @property
    def source(self) -> BalanceSource:
        return self._source

    def subscribe(self, handler: Callable[[Event], Any]) -> Callable[[], None]:
        return self._bus.subscribe(CREDITS_CHANGED, handler)

    def write(self, value: float, source: BalanceSource) -> float:
        """Store ``value`` (rounded, floored at zero) and notify subscribers.

        Reserved for ``CreditLedgerSync``; returns the stored value.
        """
        previous = self._value
        self._value = max(0.0, round_credits(value))
        self._source = source
        self._bus.publish(
            CREDITS_CHANGED,
            {"credits": self._value, "previous": previous, "source": source.value},
            source="ledger",
        )
        return self._value


class CreditLedgerSync:
    """Apply optimistic decrements and overwrite them with server truth."""

    def __init__(
        self,
        store: CreditStore,
        refresh_service: CreditRefreshService | None,
        session: SessionProvider,
    ) -> None:
        self.store = store
        self._refresh_service = refresh_service
        self._session = session

    @property
    def balance(self) -> float:
        return self.store.value

    def optimistic_decrement(self, amount: float) -> float:
        """Subtract ``amount`` from the balance as it is right now."""
        current = self.store.value
        updated = self.store.write(current - max(0.0, amount), BalanceSource.OPTIMISTIC)
        LOGGER.info(
            "ledger.optimistic_decrement",
            extra={
                "event": "ledger.optimistic_decrement",
                "amount": amount,
                "before": current,
                "after": updated,
            },
        )
        return updated

    def apply_authoritative(self, value: float) -> float:
        """Replace the balance outright with a server-reported value."""
        updated = self.store.write(value, BalanceSource.AUTHORITATIVE)
        LOGGER.info(
            "ledger.authoritative",
            extra={"event": "ledger.authoritative", "credits": updated},
        )
        return updated

    async def reconcile(self) -> float | None:
        """Fetch the authoritative balance; failures keep the current value."""
        identifier = self._session.identifier
        if self._refresh_service is None or not identifier:
            LOGGER.info(
                "ledger.reconcile.skipped",
                extra={"event": "ledger.reconcile.skipped"},
            )
            return None
        try:
            value = await self._refresh_service.refresh(identifier)
        except Exception as exc:  # noqa: BLE001 - reconcile must never surface to the user.
            LOGGER.warning(
                "ledger.reconcile.failed",
                extra={
                    "event": "ledger.reconcile.failed",
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            return None
        return self.apply_authoritative(value)
