"""
Heartbeat task for an open session.
"""
import asyncio
from typing import Awaitable, Callable, Optional
from blaze_feed.config import settings
from blaze_feed.protocol.frames import HEARTBEAT_FRAME
from blaze_feed.utils.logging import get_logger

logger = get_logger("session.keepalive")

SendFunc = Callable[[str], Awaitable[None]]


class Keepalive:
    """
    Sends ``HEARTBEAT_FRAME`` every ``interval`` seconds until stopped.
    A failed send is logged and skipped; the read loop sees the dead socket on its own.
    """

    def __init__(self, send: SendFunc, interval: Optional[float] = None, timeout: Optional[float] = None):
        self._send = send
        self.interval = interval or settings.BLAZE_PING_INTERVAL
        self.timeout = timeout or settings.BLAZE_PING_TIMEOUT
        self._task: Optional[asyncio.Task] = None
        self.beats = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.debug(f"Keepalive started (every {self.interval:.1f}s)")

    async def stop(self):
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Keepalive stopped")

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await asyncio.wait_for(self._send(HEARTBEAT_FRAME), timeout=self.timeout)
                self.beats += 1
                logger.debug("Ping sent")
            except asyncio.TimeoutError:
                logger.warning("Ping timeout")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Ping failed: {e}")
