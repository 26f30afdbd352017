"""Background task that keeps issue statuses in step with the clock."""

import asyncio
import contextlib
import logging
from typing import Optional

from services.circulation import sweep_overdue

logger = logging.getLogger(__name__)


class OverdueSweeper:
    """Runs sweep_overdue every ``interval`` seconds on its own session.

    The sweep is an idempotent status recomputation, so racing with a
    request that reads the same issues is harmless.
    """

    def __init__(self, session_factory, interval: float) -> None:
        self.session_factory = session_factory
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        async with self.session_factory() as db:
            return await sweep_overdue(db)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except Exception:
                logger.exception("Overdue sweep failed")

    def start(self) -> None:
        if self.interval <= 0:
            logger.info("Overdue sweep disabled")
            return
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("Overdue sweep started | interval=%ss", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Overdue sweep stopped")
