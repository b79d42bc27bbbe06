"""
Callback fan-out for feed events.
Callbacks run on a fixed pool of worker tasks so the read loop never waits on consumers.
"""
import asyncio
import inspect
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple
from blaze_feed.config import settings
from blaze_feed.utils.logging import get_logger

logger = get_logger("session.dispatcher")

# Callbacks receive the event data; they may be sync or async
EventCallback = Callable[[Any], Any]


class EventDispatcher:
    """
    Registry of callbacks per event name, plus the workers that run them.

    Features:
    - Append-only registration, safe to call while events are flowing
    - Non-blocking emit: one queued job per callback
    - Bounded queue and worker count, so bursts cannot spawn unbounded tasks
    - Per-callback timeout and error isolation
    """

    def __init__(
        self,
        workers: Optional[int] = None,
        queue_size: Optional[int] = None,
        callback_timeout: Optional[float] = None,
    ):
        self.workers = workers or settings.DISPATCH_WORKERS
        self.queue_size = queue_size or settings.DISPATCH_QUEUE_SIZE
        if callback_timeout is None:
            callback_timeout = settings.DISPATCH_CALLBACK_TIMEOUT
        # 0 lets async callbacks run as long as they like
        self.callback_timeout = callback_timeout or None

        # Event name -> callbacks; replaced, never mutated in place
        self._callbacks: Dict[str, Tuple[EventCallback, ...]] = {}
        self._lock = threading.Lock()

        self._queue: Optional[asyncio.Queue] = None
        self._worker_tasks: List[asyncio.Task] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        # Stats
        self._emitted = 0
        self._dropped = 0
        self._failed = 0

    def on(self, event: str, callback: EventCallback):
        """
        Register ``callback`` for ``event``. Callbacks fire in registration order.

        An async callback still running after ``callback_timeout`` seconds is
        cancelled and counted as failed. Set DISPATCH_CALLBACK_TIMEOUT=0 for
        long-running consumers.
        """
        with self._lock:
            self._callbacks[event] = self._callbacks.get(event, ()) + (callback,)

    def callback_count(self, event: str) -> int:
        return len(self._callbacks.get(event, ()))

    def event_names(self) -> List[str]:
        return list(self._callbacks.keys())

    def emit(self, event: str, data: Any) -> int:
        """
        Queue ``data`` for every callback registered on ``event``.
        Must be called from the event loop. Returns the number of jobs queued.
        """
        callbacks = self._callbacks.get(event, ())
        if not callbacks:
            return 0

        queue = self._ensure_workers()
        queued = 0
        for callback in callbacks:
            try:
                queue.put_nowait((event, callback, data))
                queued += 1
            except asyncio.QueueFull:
                self._dropped += 1
                logger.warning(f"Dispatch queue full, dropping {event} for {_name_of(callback)}")

        self._emitted += queued
        return queued

    def _ensure_workers(self) -> asyncio.Queue:
        loop = asyncio.get_running_loop()
        if self._queue is None or self._loop is not loop:
            self._loop = loop
            self._queue = asyncio.Queue(maxsize=self.queue_size)
            self._worker_tasks = [
                loop.create_task(self._worker(i)) for i in range(self.workers)
            ]
            logger.debug(f"Started {self.workers} dispatch workers")
        return self._queue

    async def _worker(self, index: int):
        queue = self._queue
        while True:
            event, callback, data = await queue.get()
            try:
                await self._invoke(event, callback, data)
            finally:
                queue.task_done()

    async def _invoke(self, event: str, callback: EventCallback, data: Any):
        try:
            result = callback(data)
            if inspect.isawaitable(result):
                await asyncio.wait_for(result, timeout=self.callback_timeout)
        except asyncio.TimeoutError:
            self._failed += 1
            logger.warning(f"Callback {_name_of(callback)} on {event} timed out (>{self.callback_timeout}s)")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failed += 1
            logger.error(f"Callback {_name_of(callback)} on {event} failed: {e}", exc_info=True)

    async def join(self):
        """Wait until every queued job has run."""
        if self._queue is not None and self._loop is asyncio.get_running_loop():
            await self._queue.join()

    async def stop(self, drain: bool = True):
        """
        Stop the workers, by default after the queue drains.
        Do not call from inside a callback when draining: the job would wait on itself.
        """
        if drain:
            await self.join()

        for task in self._worker_tasks:
            if not task.done():
                task.cancel()
        for task in self._worker_tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._worker_tasks = []
        self._queue = None
        self._loop = None

    def get_stats(self) -> Dict[str, Any]:
        return {
            "events": len(self._callbacks),
            "callbacks": sum(len(cbs) for cbs in self._callbacks.values()),
            "emitted": self._emitted,
            "dropped": self._dropped,
            "failed": self._failed,
            "pending": self._queue.qsize() if self._queue is not None else 0,
        }


def _name_of(callback: EventCallback) -> str:
    return getattr(callback, "__qualname__", repr(callback))
