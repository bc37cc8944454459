"""Bookkeeping for the background tasks the orchestrator spawns."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


async def _drain(tasks: Iterable[asyncio.Task[Any]]) -> None:
    # Failures were already reported by the done callback.
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:  # noqa: BLE001
            pass


class TaskManager:
    """Keep a strong reference to every in-flight send and generation.

    A task registered under a slot name (``"send"``, ``"generate"``) is
    reported by ``is_running`` until it finishes.
    """

    def __init__(self) -> None:
        self._slots: dict[str, asyncio.Task[Any]] = {}
        self._loose: set[asyncio.Task[Any]] = set()

    def add(self, task: asyncio.Task[Any], name: str | None = None) -> None:
        if name is None:
            self._loose.add(task)
            task.add_done_callback(self._loose.discard)
        else:
            # A previous holder of the slot keeps running untracked.
            self._slots[name] = task
            task.add_done_callback(lambda done, slot=name: self._release(slot, done))
        task.add_done_callback(self._report)

    def is_running(self, name: str) -> bool:
        task = self._slots.get(name)
        return task is not None and not task.done()

    async def cancel_all(self) -> None:
        pending = [task for task in self._tracked() if not task.done()]
        for task in pending:
            task.cancel()
        await _drain(pending)
        self._slots.clear()
        self._loose.clear()

    async def await_all(self) -> None:
        """Wait for every tracked task to finish on its own."""
        await _drain([task for task in self._tracked() if not task.done()])

    def _tracked(self) -> list[asyncio.Task[Any]]:
        return [*self._slots.values(), *self._loose]

    def _release(self, name: str, task: asyncio.Task[Any]) -> None:
        if self._slots.get(name) is task:
            del self._slots[name]

    def _report(self, task: asyncio.Task[Any]) -> None:
        if task.cancelled() or task.exception() is None:
            return
        exc = task.exception()
        LOGGER.warning(
            "task.exception",
            extra={
                "event": "task.exception",
                "task_name": task.get_name(),
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )
