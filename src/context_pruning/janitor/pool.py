"""Bounded worker pool with at-most-one-in-flight admission per key."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

log = logging.getLogger(__name__)


class JanitorPool:
    """Runs keyed jobs on the event loop, at most ``max_workers`` at a time.

    A submission whose key already has a job queued or running is rejected.
    """

    def __init__(self, max_workers: int = 4) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._max_workers = max_workers
        self._slots: asyncio.Semaphore | None = None
        self._in_flight: dict[str, asyncio.Task] = {}
        self._closed = False

    @property
    def in_flight(self) -> list[str]:
        return list(self._in_flight)

    def is_running(self, key: str) -> bool:
        return key in self._in_flight

    def submit(self, key: str, job: Callable[[str], Awaitable[Any]]) -> bool:
        """Schedule ``job(key)``. Returns False if *key* is already in flight.

        Must be called from within a running event loop.
        """
        if self._closed:
            log.debug("Pool closed, dropping job for %s", key)
            return False
        if key in self._in_flight:
            log.debug("Job for %s already in flight, dropping duplicate", key)
            return False
        if self._slots is None:
            self._slots = asyncio.Semaphore(self._max_workers)
        task = asyncio.get_running_loop().create_task(self._run(key, job))
        self._in_flight[key] = task
        task.add_done_callback(lambda t, k=key: self._release(k, t))
        return True

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled() and task.exception() is not None:
            log.error("Job for %s failed: %r", key, task.exception())

    async def _run(self, key: str, job: Callable[[str], Awaitable[Any]]) -> Any:
        async with self._slots:
            return await job(key)

    async def drain(self) -> None:
        """Wait for every queued and running job to finish."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    async def aclose(self) -> None:
        """Stop accepting work and cancel whatever is still pending."""
        self._closed = True
        tasks = list(self._in_flight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._in_flight.clear()
