"""
Fixed-interval refresh loop bound to view visibility.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..config import settings


logger = logging.getLogger(__name__)


class Poller:
    """
    Calls ``tick`` every ``interval`` seconds while the view is visible.

    Becoming visible ticks immediately. A failing tick is logged and the
    loop keeps going; only ``stop`` ends it.
    """

    def __init__(self, tick: Callable[[], Awaitable[None]], interval: Optional[float] = None):
        self.tick = tick
        self.interval = interval or settings.POLL_INTERVAL_SECONDS
        self.visible = True
        self._wake = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if not self.running:
            self._task = asyncio.create_task(self._run())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    def set_visible(self, visible: bool):
        was_visible = self.visible
        self.visible = visible
        if visible and not was_visible:
            self._wake.set()

    async def _run(self):
        while True:
            self._wake.clear()
            if self.visible:
                try:
                    await self.tick()
                except Exception:
                    logger.exception("Poll tick failed")

            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
