import asyncio
from typing import Any, Callable, Optional

from metrowatch.config import logger

_CLOSED = object()


class ChangeSubscription:
    """A cancellable, push-based stream of raw change payloads.

    Transports push payloads in delivery order and consumers read them with
    ``async for``. ``release()`` unsubscribes from the transport exactly once
    and ends the iteration; anything pushed afterwards is ignored.
    """

    def __init__(self, topic: str, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.topic = topic
        self._queue: asyncio.Queue = asyncio.Queue()
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
        self._loop = loop
        self._unsubscribe: Optional[Callable[[], Any]] = None
        self.released = False

    def bind(self, unsubscribe: Callable[[], Any]):
        """Attach the transport's unsubscribe handle."""
        if self.released:
            unsubscribe()
            return
        self._unsubscribe = unsubscribe

    def push(self, payload: Any):
        if self.released:
            logger.debug(f"Ignoring change on released subscription '{self.topic}'")
            return
        self._queue.put_nowait(payload)

    def push_threadsafe(self, payload: Any):
        """Push from a thread other than the event loop's."""
        if self._loop is None:
            raise RuntimeError(f"Subscription '{self.topic}' is not bound to an event loop")
        self._loop.call_soon_threadsafe(self.push, payload)

    def release(self):
        if self.released:
            return
        self.released = True
        self._queue.put_nowait(_CLOSED)
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            try:
                unsubscribe()
            except Exception as e:
                logger.error(f"Error unsubscribing from '{self.topic}': {str(e)}")
        logger.info(f"Released subscription to '{self.topic}'")

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.released and self._queue.empty():
            raise StopAsyncIteration
        payload = await self._queue.get()
        if payload is _CLOSED:
            raise StopAsyncIteration
        return payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.release()
