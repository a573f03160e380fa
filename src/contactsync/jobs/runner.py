"""
Runner for detached background coroutines.

Work started from a request keeps running after the response is sent. The
runner keeps a reference to every task until it finishes (the event loop only
holds weak references), logs failures that nobody awaits, and cancels what is
left when the application shuts down.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from contactsync.shared.logging import get_logger

logger = get_logger(__name__)


class BackgroundTaskRunner:
    """Owns fire-and-forget tasks for the lifetime of the application."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        """Schedule ``coro`` on the running loop and return its task.

        Raises:
            RuntimeError: If the runner has been shut down.
        """
        if self._closed:
            coro.close()
            raise RuntimeError("Background task runner is shut down")

        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug("Background task spawned", extra={"task_name": task.get_name()})
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info("Background task cancelled", extra={"task_name": task.get_name()})
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task failed",
                extra={"task_name": task.get_name(), "error": repr(exc)},
                exc_info=exc,
            )

    async def wait_idle(self, timeout: float | None = None) -> None:
        """Wait until every task spawned so far (and any they spawn) has finished."""
        async def _drain() -> None:
            while self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)

        await asyncio.wait_for(_drain(), timeout)

    async def shutdown(self, grace_seconds: float = 5.0) -> None:
        """Stop accepting work, give running tasks a grace period, then cancel them."""
        self._closed = True
        if not self._tasks:
            return

        logger.info("Waiting for background tasks", extra={"pending": len(self._tasks)})
        _, still_running = await asyncio.wait(list(self._tasks), timeout=grace_seconds)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning(
                "Background tasks cancelled at shutdown",
                extra={"cancelled": len(still_running)},
            )
