import asyncio
from typing import Any, Coroutine, Optional

from app.logging_config import get_logger

logger = get_logger("task_supervisor")


class TaskSupervisor:
    """Owns detached units of work (webhook turns, letter generation, CRM sync).

    Every task is referenced until it finishes and its outcome is logged, so a
    failure inside a fire-and-forget unit is never silently dropped.
    """

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()
        self.completed = 0
        self.failed = 0

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        *,
        name: str,
        context: Optional[dict] = None,
    ) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(lambda finished: self._on_done(finished, context or {}))
        return task

    def _on_done(self, task: asyncio.Task, context: dict) -> None:
        self._tasks.discard(task)
        log_context = {"task": task.get_name(), **context}

        if task.cancelled():
            logger.warning("Background task cancelled", extra={"context": log_context})
            return

        exc = task.exception()
        if exc is not None:
            self.failed += 1
            logger.error(
                "Background task failed",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"context": {**log_context, "error": str(exc)}},
            )
            return

        self.completed += 1
        logger.debug("Background task finished", extra={"context": log_context})

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every task, including tasks spawned by other tasks, has finished."""
        while True:
            running = [task for task in self._tasks if not task.done()]
            if not running:
                return
            await asyncio.gather(*running, return_exceptions=True)

    async def shutdown(self) -> None:
        if not self._tasks:
            return
        logger.info(f"Cancelling {len(self._tasks)} background tasks")
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
