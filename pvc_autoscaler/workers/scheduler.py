import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class PeriodicTask:
    """Run ``action`` every ``interval_seconds`` until stopped.

    The interval is measured from the end of one run to the start of the next, so runs
    never overlap. A failing run is logged and does not stop the loop.
    """

    def __init__(
        self,
        interval_seconds: float,
        action: Callable[[], Awaitable[Any]],
        name: str,
        *,
        run_immediately: bool = True,
    ) -> None:
        self.interval_seconds = interval_seconds
        self.action = action
        self.name = name
        self.run_immediately = run_immediately
        self.runs = 0
        self._task: asyncio.Task[Any] | None = None
        self._stopped = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopped.clear()
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info("scheduler.started", task=self.name, interval=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopped.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("scheduler.stopped", task=self.name, runs=self.runs)

    async def run_once(self) -> None:
        started = time.monotonic()
        try:
            await self.action()
        except Exception as exc:
            logger.warning("scheduler.run_failed", task=self.name, error=str(exc))
        finally:
            self.runs += 1
            logger.debug("scheduler.run_done", task=self.name, elapsed=round(time.monotonic() - started, 3))

    async def _loop(self) -> None:
        if not self.run_immediately and await self._sleep():
            return
        while not self._stopped.is_set():
            await self.run_once()
            if await self._sleep():
                return

    async def _sleep(self) -> bool:
        """Wait one interval; True when stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            return False
        return True
