"""Tests for the displayed credit balance."""

from __future__ import annotations

import unittest

from fakes import FakeRefresh
from genchat.events import CREDITS_CHANGED, EventBus
from genchat.exceptions import CreditRefreshError
from genchat.ledger import BalanceSource, CreditLedgerSync, CreditStore
from genchat.services import StaticSession


def make_ledger(initial: float, refresh=None, identifier: str | None = "0xabc"):
    bus = EventBus()
    store = CreditStore(initial, bus=bus)
    session = StaticSession(identifier=identifier, current_credits=initial)
    return CreditLedgerSync(store, refresh, session), bus


class CreditLedgerTests(unittest.IsolatedAsyncioTestCase):
    async def test_optimistic_decrement_uses_current_balance(self) -> None:
        ledger, _ = make_ledger(10.0)
        ledger.optimistic_decrement(0.65)
        self.assertEqual(ledger.balance, 9.35)
        self.assertIs(ledger.store.source, BalanceSource.OPTIMISTIC)

    async def test_balance_never_goes_negative(self) -> None:
        ledger, _ = make_ledger(0.3)
        ledger.optimistic_decrement(0.5)
        self.assertEqual(ledger.balance, 0.0)
        ledger.apply_authoritative(-4)
        self.assertEqual(ledger.balance, 0.0)

    async def test_authoritative_overwrites(self) -> None:
        ledger, _ = make_ledger(10.0, FakeRefresh(7.25))
        ledger.optimistic_decrement(0.5)
        self.assertEqual(await ledger.reconcile(), 7.25)
        self.assertEqual(ledger.balance, 7.25)
        self.assertIs(ledger.store.source, BalanceSource.AUTHORITATIVE)

    async def test_reconcile_failure_keeps_value(self) -> None:
        ledger, _ = make_ledger(10.0, FakeRefresh(CreditRefreshError("down")))
        ledger.optimistic_decrement(1.0)
        with self.assertLogs("genchat.ledger", level="WARNING") as logs:
            self.assertIsNone(await ledger.reconcile())
        self.assertEqual(ledger.balance, 9.0)
        self.assertTrue(any("ledger.reconcile.failed" in line for line in logs.output))

    async def test_reconcile_skipped_without_identity(self) -> None:
        refresh = FakeRefresh(3.0)
        ledger, _ = make_ledger(10.0, refresh, identifier=None)
        self.assertIsNone(await ledger.reconcile())
        self.assertEqual(refresh.calls, [])

    def test_store_write_rounds_and_records_source(self) -> None:
        store = CreditStore(5.0)
        self.assertEqual(store.write(3.14159, BalanceSource.AUTHORITATIVE), 3.14)
        self.assertIs(store.source, BalanceSource.AUTHORITATIVE)
        self.assertEqual(store.write(-1.0, BalanceSource.OPTIMISTIC), 0.0)

    async def test_changes_are_published(self) -> None:
        ledger, bus = make_ledger(2.0)
        seen: list[tuple[float, str]] = []
        bus.subscribe(
            CREDITS_CHANGED,
            lambda event: seen.append((event.data["credits"], event.data["source"])),
        )
        ledger.optimistic_decrement(0.5)
        ledger.apply_authoritative(1.75)
        self.assertEqual(seen, [(1.5, "optimistic"), (1.75, "authoritative")])


if __name__ == "__main__":
    unittest.main()
