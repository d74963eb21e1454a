"""
Background task supervision for the FastAPI lifespan.

`background_task` runs a coroutine next to the HTTP server for the lifetime
of the app. On exit the task is cancelled and given `grace_s` seconds to
unwind before we stop waiting for it. If the task dies on its own, `on_crash`
is called so the caller can bring the server down with it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Coroutine
from contextlib import asynccontextmanager
from typing import Any

logger = logging.getLogger(__name__)


@asynccontextmanager
async def background_task(
    coro: Coroutine[Any, Any, Any],
    *,
    name: str,
    grace_s: float = 10.0,
    on_crash: Callable[[BaseException], None] | None = None,
) -> AsyncIterator[asyncio.Task]:
    task = asyncio.create_task(coro, name=name)

    def _done(t: asyncio.Task) -> None:
        if t.cancelled():
            return
        exc = t.exception()
        if exc is None:
            logger.warning("background_task_exited name=%s", name)
            return
        logger.error("background_task_crashed name=%s", name, exc_info=exc)
        if on_crash is not None:
            on_crash(exc)

    task.add_done_callback(_done)
    try:
        yield task
    finally:
        task.remove_done_callback(_done)
        await stop_task(task, grace_s=grace_s)


async def stop_task(task: asyncio.Task, *, grace_s: float) -> None:
    if task.done():
        return
    task.cancel()
    done, _ = await asyncio.wait({task}, timeout=grace_s)
    if not done:
        logger.warning("background_task_stop_timeout name=%s grace_s=%s", task.get_name(), grace_s)
        return
    if not task.cancelled() and task.exception() is not None:
        logger.error("background_task_failed_on_stop name=%s", task.get_name(), exc_info=task.exception())
