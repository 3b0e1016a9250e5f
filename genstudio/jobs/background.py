"""In-process detached task runner built on asyncio.

Each submitted job gets its own ``asyncio.Task`` on the application's event
loop. Tasks are held here, not by the request handler, so a client closing
its connection never cancels generation. Nothing survives a process restart.
"""

import asyncio
import logging
from typing import Awaitable, Dict

from genstudio.jobs.dispatcher import JobDispatcher

logger = logging.getLogger(__name__)


class InProcessRunner(JobDispatcher):
    """Local async runner. One background task per job, no queueing."""

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}
        self._running = False

    def submit(self, job_id: str, work: Awaitable[None]) -> None:
        if not self._running:
            # Close the coroutine so Python does not warn it was never awaited
            close = getattr(work, "close", None)
            if close is not None:
                close()
            raise RuntimeError("Background runner is not started")

        task = asyncio.create_task(work, name=f"video-job-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t: self._on_done(job_id, t))

    def active_count(self) -> int:
        return len(self._tasks)

    async def wait(self, job_id: str, timeout: float = 10.0) -> bool:
        """Wait for a job's task to finish. True if it is done (or was never here)."""
        task = self._tasks.get(job_id)
        if task is None:
            return True
        done, _ = await asyncio.wait({task}, timeout=timeout)
        return bool(done)

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def _on_done(self, job_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task for job %s escaped its error boundary",
                job_id,
                exc_info=exc,
            )
