"""Fire-and-forget execution of side effects.

Cache population and scan recording run after the response has been
decided. Their failures are logged and reported, never raised to the
request that scheduled them.
"""

import asyncio
import logging
from typing import Awaitable, Optional, Set

from dynalink.core import metrics
from dynalink.core.incident_log import BACKGROUND_TASK_FAILED, report_incident

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """
    Owns the asyncio tasks created for side effects.

    Strong references are held until each task finishes so the event loop
    cannot garbage-collect a pending task.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, coro: Awaitable, name: str, code: Optional[str] = None) -> asyncio.Task:
        """
        Schedule ``coro`` without waiting for it.

        Args:
            coro: Coroutine to run
            name: Short label used in logs and metrics, e.g. ``record_scan``
            code: Short code the side effect belongs to

        Returns:
            asyncio.Task: The scheduled task
        """
        task = asyncio.create_task(self._run(coro, name, code), name=f"{name}:{code}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, coro: Awaitable, name: str, code: Optional[str]) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            logger.warning(f"Background task {name} for {code} was cancelled")
            raise
        except Exception as e:
            logger.error(f"Background task {name} for {code} failed: {e}")
            metrics.background_failures.add(1, {"task": name})
            report_incident(BACKGROUND_TASK_FAILED, code, e, task=name)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """
        Wait for all pending tasks to finish.

        Tasks still running after ``timeout`` seconds are cancelled.
        """
        if not self._tasks:
            return
        tasks = list(self._tasks)
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Cancelled {len(pending)} background tasks on drain")
            await asyncio.gather(*pending, return_exceptions=True)
