"""
Detached asyncio work and best-effort side effects.
"""

import asyncio
import logging
from typing import Any, Awaitable, Coroutine, Optional, Set

logger = logging.getLogger(__name__)

# Strong references so pending tasks are not garbage-collected mid-flight
_background_tasks: Set[asyncio.Task] = set()


def spawn(coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
    """
    Run a coroutine in the background and only log its outcome.

    The returned task may still be awaited (see ``wait_at_most``); nobody is
    required to.
    """
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_done)
    return task


def _on_done(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        logger.warning(f"Background task {task.get_name()} was cancelled")
        return

    exc = task.exception()
    if exc is not None:
        logger.error(
            f"Background task {task.get_name()} failed: {exc}",
            exc_info=(type(exc), exc, exc.__traceback__),
            extra={"task": task.get_name()}
        )
    else:
        logger.debug(f"Background task {task.get_name()} completed")


async def wait_at_most(task: asyncio.Task, timeout: float) -> Optional[Any]:
    """
    Wait for ``task`` up to ``timeout`` seconds without cancelling it.

    Returns:
        The task result, or None if it is still running or it failed
    """
    done, _ = await asyncio.wait({task}, timeout=timeout)
    if task not in done:
        logger.info(f"{task.get_name()} still running after {timeout:.1f}s, continuing in background")
        return None
    if task.cancelled() or task.exception() is not None:
        return None
    return task.result()


async def best_effort(action: str, awaitable: Awaitable[Any], **context: Any) -> Optional[Any]:
    """
    Await a side effect whose failure must not fail the caller.

    Failures become a WARNING record carrying ``action`` and ``context``.
    """
    try:
        return await awaitable
    except Exception as e:
        logger.warning(
            f"{action} failed: {e}",
            extra={"action": action, "error": str(e), **{k: str(v) for k, v in context.items()}}
        )
        return None


def pending_tasks() -> int:
    return len(_background_tasks)


async def drain(timeout: float = 5.0) -> None:
    """Give background tasks on the running loop a chance to finish."""
    loop = asyncio.get_running_loop()
    tasks = {t for t in _background_tasks if t.get_loop() is loop and not t.done()}
    if tasks:
        logger.info(f"Waiting for {len(tasks)} background tasks")
        await asyncio.wait(tasks, timeout=timeout)
