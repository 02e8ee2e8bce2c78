"""
Detached background tasks for cache writes.
"""

import asyncio
from typing import Awaitable, Optional, Set

from shared.logging import get_logger


class DetachedTaskGroup:
    """Owns fire-and-forget tasks that must outlive the request that spawned them.

    Tasks are never joined with the request flow. Failures are logged from the
    done callback. ``drain`` is for shutdown and tests.
    """

    def __init__(self, name: str = "cache"):
        self.name = name
        self.logger = get_logger(f"storefront.tasks.{name}")
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable, description: str) -> asyncio.Task:
        """Schedule ``coro`` on the running loop and track it until it finishes."""
        task = asyncio.ensure_future(coro)
        task.set_name(f"{self.name}:{description}")
        # The set keeps a strong reference; the loop only holds weak ones
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self.logger.debug("Background task cancelled", task=task.get_name())
            return

        error = task.exception()
        if error is not None:
            self.logger.error(
                "Background task failed",
                task=task.get_name(),
                error=str(error),
                error_type=type(error).__name__,
            )

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every tracked task, including ones spawned while waiting."""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else max(0.0, deadline - loop.time())
            done, _ = await asyncio.wait(set(self._tasks), timeout=remaining)
            if not done and remaining == 0.0:
                self.logger.warning("Background tasks still pending after drain timeout", pending=len(self._tasks))
                return
            # Let done callbacks run before re-checking
            await asyncio.sleep(0)

    async def cancel_all(self) -> None:
        """Cancel outstanding tasks (shutdown path)."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
