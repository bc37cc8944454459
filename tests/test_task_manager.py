"""Tests for the TaskManager lifecycle helper."""

from __future__ import annotations

import asyncio
import unittest

from genchat.task_manager import TaskManager


async def _sleep_forever(marks: list[str], label: str) -> None:
    try:
        await asyncio.sleep(9999)
    except asyncio.CancelledError:
        marks.append(label)
        raise


class TaskManagerTests(unittest.IsolatedAsyncioTestCase):
    """Validate named and anonymous task lifecycle management."""

    async def test_named_task_is_running_until_cancelled(self) -> None:
        tm = TaskManager()
        marks: list[str] = []
        tm.add(asyncio.create_task(_sleep_forever(marks, "generate")), name="generate")
        await asyncio.sleep(0)
        self.assertTrue(tm.is_running("generate"))
        self.assertFalse(tm.is_running("send"))
        await tm.cancel_all()
        self.assertEqual(marks, ["generate"])
        self.assertFalse(tm.is_running("generate"))

    async def test_finished_named_task_is_forgotten(self) -> None:
        tm = TaskManager()

        async def _quick() -> str:
            return "done"

        task = asyncio.create_task(_quick())
        tm.add(task, name="send")
        await task
        await asyncio.sleep(0)
        self.assertFalse(tm.is_running("send"))

    async def test_failures_are_logged(self) -> None:
        tm = TaskManager()

        async def _broken() -> None:
            raise RuntimeError("boom")

        task = asyncio.create_task(_broken(), name="broken")
        with self.assertLogs("genchat.task_manager", level="WARNING") as logs:
            tm.add(task)
            with self.assertRaises(RuntimeError):
                await task
            await asyncio.sleep(0)
        self.assertTrue(any("task.exception" in line for line in logs.output))

    async def test_cancel_all_handles_mixed_tasks(self) -> None:
        tm = TaskManager()
        marks: list[str] = []
        tm.add(asyncio.create_task(_sleep_forever(marks, "named")), name="n1")
        tm.add(asyncio.create_task(_sleep_forever(marks, "anon")))
        await asyncio.sleep(0)
        await tm.cancel_all()
        self.assertEqual(sorted(marks), ["anon", "named"])

    async def test_await_all_waits_without_cancelling(self) -> None:
        tm = TaskManager()
        finished: list[int] = []

        async def _work(value: int) -> None:
            await asyncio.sleep(0)
            finished.append(value)

        for value in range(3):
            tm.add(asyncio.create_task(_work(value)))
        await tm.await_all()
        self.assertEqual(sorted(finished), [0, 1, 2])


if __name__ == "__main__":
    unittest.main()
