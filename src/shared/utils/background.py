# /src/shared/utils/background.py
"""
Bounded pool for detached async work (cache refreshes, notification fan-out).

Callers never await the spawned work; failures go to the log, not the caller.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Set

from src.shared.logging import get_logger

logger = get_logger(__name__)


class BackgroundTaskRunner:
    def __init__(self, max_concurrency: int = 8) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, factory: Callable[[], Awaitable[object]], *, name: str) -> Optional[asyncio.Task]:
        """Schedule `factory()` on the running loop; returns None once closed."""
        if self._closed:
            logger.warning("Background task dropped, runner closed", task=name)
            return None
        task = asyncio.get_running_loop().create_task(self._run(factory, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, factory: Callable[[], Awaitable[object]], name: str) -> None:
        async with self._semaphore:
            try:
                await factory()
            except asyncio.CancelledError:
                logger.info("Background task cancelled", task=name)
                raise
            except Exception as e:
                logger.error("Background task failed", task=name, error=str(e), exc_info=True)

    async def drain(self) -> None:
        """Wait for everything spawned so far, including work spawned meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self, *, cancel: bool = False) -> None:
        self._closed = True
        if cancel:
            for task in list(self._tasks):
                task.cancel()
        await self.drain()
