"""Tracking for fire-and-forget background work."""

import asyncio
from typing import Any, Coroutine, Optional, Set

from .logging import get_logger

logger = get_logger(__name__)


class DetachedTasks:
    """
    Best-effort completion set for detached coroutines.

    Spawned tasks never propagate their result or failure to the caller that
    spawned them. Failures are logged and counted; ``drain`` lets tests and
    shutdown code wait for whatever is still in flight.

    Attributes:
        completed: Number of tasks that finished without raising
        failed: Number of tasks that raised
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()
        self.completed = 0
        self.failed = 0

    def spawn(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug(f"Background task {task.get_name()} cancelled")
            return
        error = task.exception()
        if error is not None:
            self.failed += 1
            logger.debug(f"Background task {task.get_name()} failed: {error}")
        else:
            self.completed += 1

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every tracked task has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            # let done callbacks run
            await asyncio.sleep(0)
