"""
Tests for background task helpers.
"""

import asyncio
import logging

from bus_booking_service.utils.background import best_effort, drain, spawn, wait_at_most


async def test_wait_at_most_returns_result_when_fast():
    async def quick():
        return "ticket"

    task = spawn(quick(), name="quick")
    assert await wait_at_most(task, 1.0) == "ticket"


async def test_wait_at_most_does_not_cancel_slow_task():
    finished = asyncio.Event()

    async def slow():
        await asyncio.sleep(0.1)
        finished.set()
        return "late"

    task = spawn(slow(), name="slow")

    assert await wait_at_most(task, 0.01) is None
    assert not task.cancelled()

    await drain(timeout=1.0)
    assert finished.is_set()
    assert task.result() == "late"


async def test_wait_at_most_swallows_task_failure():
    async def broken():
        raise RuntimeError("boom")

    task = spawn(broken(), name="broken")
    assert await wait_at_most(task, 1.0) is None


async def test_best_effort_logs_and_returns_none(caplog):
    async def failing():
        raise ConnectionError("redis down")

    with caplog.at_level(logging.WARNING, logger="bus_booking_service.utils.background"):
        result = await best_effort("clear booking expiration", failing(), booking_id="b-1")

    assert result is None
    record = caplog.records[-1]
    assert "clear booking expiration failed" in record.getMessage()
    assert record.booking_id == "b-1"


async def test_best_effort_passes_result_through():
    async def ok():
        return 3

    assert await best_effort("count", ok()) == 3
