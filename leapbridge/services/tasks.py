"""Fire-and-forget task spawning with failures handled at the spawn site."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

logger = logging.getLogger("leapbridge.service.tasks")

FailureHandler = Callable[[BaseException], None]


class BackgroundTasks:
    """Keeps references to spawned tasks and reports anything they raise.

    A spawned coroutine that fails is logged (and handed to its
    ``on_error`` callback) instead of surfacing as an unretrieved task
    exception on the event loop.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(
        self,
        coroutine: Coroutine[Any, Any, Any],
        *,
        name: str,
        on_error: FailureHandler | None = None,
    ) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coroutine, name=name)
        self._tasks.add(task)
        task.add_done_callback(lambda finished: self._finished(finished, on_error))
        return task

    def _finished(self, task: asyncio.Task[Any], on_error: FailureHandler | None) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        self._log.error(
            "Background task %s failed: %s",
            task.get_name(),
            exc,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        if on_error is not None:
            try:
                on_error(exc)
            except Exception:
                self._log.exception("Error handler for %s raised", task.get_name())

    async def cancel_all(self) -> None:
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()
