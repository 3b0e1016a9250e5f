"""Detached task runner interface."""

from abc import ABC, abstractmethod
from typing import Awaitable


class JobDispatcher(ABC):
    """Runs one unit of background work per job, outside any request lifecycle."""

    @abstractmethod
    def submit(self, job_id: str, work: Awaitable[None]) -> None:
        """Start ``work`` detached from the caller. Returns immediately."""
        ...

    @abstractmethod
    def active_count(self) -> int:
        """Number of jobs still being driven."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start the dispatcher."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher, cancelling outstanding work."""
        ...
