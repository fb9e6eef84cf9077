"""In-process publish/subscribe bus for delivery events."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from uuid import uuid4

import structlog

from buzzhub.models import DeliveryEvent

logger = structlog.get_logger()

EventHandler = Callable[[DeliveryEvent], Awaitable[None]]


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


@dataclass
class _BusSubscriber:
    token: str
    conversation_id: str
    handler: EventHandler
    queue: asyncio.Queue[DeliveryEvent]
    task: asyncio.Task | None = None
    dropped: int = field(default=0)
    stopped: bool = False


class DeliveryBus:
    """Best-effort, at-most-once fan-out of events to per-conversation handlers.

    Every subscriber gets its own bounded queue drained by its own worker task,
    so ``publish`` never waits on a handler. When a subscriber's queue is full
    the event is dropped for that subscriber only. A single worker per
    subscriber keeps delivery in publish order within a conversation.
    """

    def __init__(self, queue_size: int = 256, handler_timeout: float = 5.0) -> None:
        self.queue_size = queue_size
        self.handler_timeout = handler_timeout
        self._subscribers: dict[str, dict[str, _BusSubscriber]] = {}
        self._by_token: dict[str, _BusSubscriber] = {}
        self._closed = False

    def subscribe(self, conversation_id: str, handler: EventHandler) -> str:
        """Register a handler for events of one conversation.

        Must be called from within the running event loop.

        Returns:
            Token to pass to ``unsubscribe``
        """
        if self._closed:
            raise RuntimeError("DeliveryBus is closed")

        subscriber = _BusSubscriber(
            token=uuid4().hex,
            conversation_id=conversation_id,
            handler=handler,
            queue=asyncio.Queue(maxsize=self.queue_size),
        )
        subscriber.task = asyncio.get_running_loop().create_task(
            self._worker(subscriber),
            name=f"delivery-{conversation_id}-{subscriber.token[:8]}",
        )
        self._subscribers.setdefault(conversation_id, {})[subscriber.token] = subscriber
        self._by_token[subscriber.token] = subscriber

        logger.debug("Bus subscriber added", conversation_id=conversation_id, token=subscriber.token)
        return subscriber.token

    def unsubscribe(self, token: str) -> bool:
        """Remove a handler. Undelivered events queued for it are discarded."""
        subscriber = self._by_token.pop(token, None)
        if subscriber is None:
            return False

        group = self._subscribers.get(subscriber.conversation_id, {})
        group.pop(token, None)
        if not group:
            self._subscribers.pop(subscriber.conversation_id, None)

        # A worker unsubscribed from inside its own handler exits on the flag
        subscriber.stopped = True
        if subscriber.task is not None and subscriber.task is not _current_task():
            subscriber.task.cancel()
        while not subscriber.queue.empty():
            subscriber.queue.get_nowait()
            subscriber.queue.task_done()

        logger.debug(
            "Bus subscriber removed",
            conversation_id=subscriber.conversation_id,
            token=token,
        )
        return True

    def publish(self, event: DeliveryEvent) -> int:
        """Queue an event for every handler of its conversation without blocking.

        Returns:
            Number of handlers the event was queued for
        """
        if self._closed:
            logger.warning("Publish on closed bus ignored", conversation_id=event.conversation_id)
            return 0

        queued = 0
        for subscriber in list(self._subscribers.get(event.conversation_id, {}).values()):
            try:
                subscriber.queue.put_nowait(event)
                queued += 1
            except asyncio.QueueFull:
                subscriber.dropped += 1
                logger.warning(
                    "Dropped event for slow bus subscriber",
                    conversation_id=event.conversation_id,
                    message_id=event.message.id,
                    token=subscriber.token,
                    dropped_total=subscriber.dropped,
                )
        return queued

    async def _worker(self, subscriber: _BusSubscriber) -> None:
        while not subscriber.stopped:
            event = await subscriber.queue.get()
            try:
                await asyncio.wait_for(subscriber.handler(event), timeout=self.handler_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Delivery handler timed out",
                    conversation_id=subscriber.conversation_id,
                    message_id=event.message.id,
                    timeout=self.handler_timeout,
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "Delivery handler failed",
                    conversation_id=subscriber.conversation_id,
                    message_id=event.message.id,
                    error=str(e),
                    exc_info=True,
                )
            finally:
                subscriber.queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been handled (or dropped by a handler)."""
        for subscriber in list(self._by_token.values()):
            await subscriber.queue.join()

    def subscriber_count(self, conversation_id: str | None = None) -> int:
        """Number of registered handlers, overall or for one conversation."""
        if conversation_id is None:
            return len(self._by_token)
        return len(self._subscribers.get(conversation_id, {}))

    async def close(self) -> None:
        """Stop all workers. Pending events are discarded."""
        self._closed = True
        tasks = [s.task for s in self._by_token.values() if s.task is not None]
        for token in list(self._by_token):
            self.unsubscribe(token)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Delivery bus closed", workers_stopped=len(tasks))
