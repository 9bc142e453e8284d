import asyncio
import time
from abc import ABC, abstractmethod
from typing import Optional

from src.shared.logging import get_logger

logger = get_logger(__name__)


class BaseWorker(ABC):
    """Base class for in-process background workers driven by a fixed interval."""

    def __init__(self, worker_name: str, interval: float = 60) -> None:
        self.worker_name = worker_name
        self.interval = interval
        self.is_running = False
        self.shutdown_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def start(self) -> asyncio.Task:
        """Run the loop as a detached task on the current event loop."""
        if self._task is None or self._task.done():
            self.shutdown_event.clear()
            self._task = asyncio.get_running_loop().create_task(self.run(), name=self.worker_name)
        return self._task

    async def shutdown(self) -> None:
        """Graceful shutdown of worker."""
        self.is_running = False
        self.shutdown_event.set()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        logger.info("Worker stopped", worker=self.worker_name)

    async def run(self) -> None:
        """Main worker loop."""
        self.is_running = True
        logger.info("Worker started", worker=self.worker_name, interval=self.interval)

        while self.is_running and not self.shutdown_event.is_set():
            try:
                # Wait for next interval, but wake up immediately on shutdown
                await asyncio.wait_for(self.shutdown_event.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass

            start_time = time.monotonic()
            try:
                success = await self.execute()
            except asyncio.CancelledError:
                logger.info("Worker cancelled", worker=self.worker_name)
                raise
            except Exception as e:
                logger.error("Worker iteration failed", worker=self.worker_name, error=str(e), exc_info=True)
                continue

            duration = time.monotonic() - start_time
            if success:
                logger.debug("Worker iteration completed", worker=self.worker_name, duration=duration)
            else:
                logger.warning("Worker iteration completed with errors", worker=self.worker_name, duration=duration)

        self.is_running = False

    @abstractmethod
    async def execute(self) -> bool:
        """Execute the worker's main task. Must be implemented by subclasses."""
