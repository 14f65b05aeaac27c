from typing import AsyncIterator, Generic, Optional, TypeVar
import asyncio

T = TypeVar("T")

_CLOSED = object()


class EventChannel(Generic[T]):
    """Bounded single-consumer channel: the producer pushes, the consumer pulls"""

    def __init__(self, maxsize: int = 256):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._error: Optional[BaseException] = None

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, item: T) -> None:
        """Push an item, waiting while the channel is full"""

        if self._closed:
            raise RuntimeError("Cannot send on a closed channel")
        await self._queue.put(item)

    async def close(self, error: Optional[BaseException] = None) -> None:
        """Close the channel; a given error is raised to the consumer after pending items"""

        if self._closed:
            return
        self._closed = True
        self._error = error
        await self._queue.put(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[T]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                if self._error is not None:
                    raise self._error
                return
            yield item
