import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from shared.config.settings import POLL_INTERVAL_SECONDS

logger = structlog.get_logger(__name__)


class OrderPoller:
    """Runs `tick` immediately and then every `interval` seconds until stopped.

    A failing tick is logged and the next one runs on schedule.
    """

    def __init__(self, tick: Callable[[], Awaitable], interval: float = POLL_INTERVAL_SECONDS):
        if interval <= 0:
            raise ValueError("poll interval must be positive")
        self.tick = tick
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info("order_polling_started", interval=self.interval)

    async def stop(self):
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("order_polling_stopped")

    async def _run(self):
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("order_poll_failed", error=str(e))
            await asyncio.sleep(self.interval)
