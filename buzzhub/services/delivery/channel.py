"""Per-connection delivery channel."""

import asyncio
from uuid import uuid4

from buzzhub.core.exceptions import ChannelClosed
from buzzhub.models import DeliveryEvent


class DeliveryChannel:
    """Bounded queue of events waiting to be pushed to one client connection.

    The API gateway owns the channel and closes it when the connection goes
    away. The subscription registry only offers events to it.
    """

    def __init__(self, maxsize: int = 100, channel_id: str | None = None) -> None:
        self.id = channel_id or uuid4().hex
        self._queue: asyncio.Queue[DeliveryEvent | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, event: DeliveryEvent) -> bool:
        """Enqueue an event without waiting.

        Returns:
            False if the event was dropped because the client is not keeping up

        Raises:
            ChannelClosed: If the channel has been closed
        """
        if self._closed:
            raise ChannelClosed(self.id)
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    async def get(self) -> DeliveryEvent:
        """Wait for the next event.

        Raises:
            ChannelClosed: Once the channel is closed and drained
        """
        if self._closed and self._queue.empty():
            raise ChannelClosed(self.id)
        event = await self._queue.get()
        if event is None:
            raise ChannelClosed(self.id)
        return event

    def close(self) -> None:
        """Close the channel and wake any waiting reader."""
        if self._closed:
            return
        self._closed = True
        try:
            # A blocked reader only exists when the queue is empty
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> "DeliveryChannel":
        return self

    async def __anext__(self) -> DeliveryEvent:
        try:
            return await self.get()
        except ChannelClosed:
            raise StopAsyncIteration from None
