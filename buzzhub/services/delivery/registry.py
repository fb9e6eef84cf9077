"""Registry of live subscriptions and their delivery channels."""

import threading
from dataclasses import dataclass
from uuid import uuid4

import structlog

from buzzhub.core.exceptions import ChannelClosed
from buzzhub.models import DeliveryEvent
from buzzhub.services.delivery.bus import DeliveryBus
from buzzhub.services.delivery.channel import DeliveryChannel

logger = structlog.get_logger()


@dataclass(frozen=True)
class SubscriptionHandle:
    """Opaque reference returned by ``subscribe``."""

    id: str
    conversation_id: str
    session_id: str


@dataclass
class Subscription:
    handle: SubscriptionHandle
    # Not owned; the gateway closes it
    channel: DeliveryChannel


class SubscriptionRegistry:
    """Tracks which channels want events for which conversation.

    The registry attaches one bus handler per conversation while that
    conversation has at least one subscription. Its lock guards only the
    bookkeeping collections; channels are offered events outside of it.
    """

    def __init__(self, bus: DeliveryBus | None = None) -> None:
        self._bus = bus
        self._lock = threading.Lock()
        self._subscriptions: dict[str, dict[str, Subscription]] = {}
        self._bus_tokens: dict[str, str] = {}

    def subscribe(
        self,
        conversation_id: str,
        session_id: str,
        channel: DeliveryChannel,
    ) -> SubscriptionHandle:
        """Register a channel for a conversation's events.

        The same session may subscribe several times (one per connection);
        each subscription gets its own delivery.
        """
        handle = SubscriptionHandle(
            id=uuid4().hex,
            conversation_id=conversation_id,
            session_id=session_id,
        )
        with self._lock:
            # Attach first so a bus failure leaves nothing registered
            if self._bus is not None and conversation_id not in self._bus_tokens:
                self._bus_tokens[conversation_id] = self._bus.subscribe(
                    conversation_id, self._on_event
                )
            self._subscriptions.setdefault(conversation_id, {})[handle.id] = Subscription(
                handle=handle, channel=channel
            )

        logger.info(
            "Subscription added",
            conversation_id=conversation_id,
            session_id=session_id,
            subscription_id=handle.id,
        )
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        """Remove a subscription. Safe to call more than once."""
        token = None
        with self._lock:
            group = self._subscriptions.get(handle.conversation_id)
            if not group or group.pop(handle.id, None) is None:
                return False
            if not group:
                del self._subscriptions[handle.conversation_id]
                token = self._bus_tokens.pop(handle.conversation_id, None)

        if token is not None and self._bus is not None:
            self._bus.unsubscribe(token)

        logger.info(
            "Subscription removed",
            conversation_id=handle.conversation_id,
            session_id=handle.session_id,
            subscription_id=handle.id,
        )
        return True

    def dispatch(self, event: DeliveryEvent) -> int:
        """Offer an event to every subscription of its conversation.

        Closed channels are skipped and their subscriptions removed. Channels
        that are full lose this event only.

        Returns:
            Number of channels that accepted the event
        """
        with self._lock:
            targets = list(self._subscriptions.get(event.conversation_id, {}).values())

        delivered = 0
        stale: list[Subscription] = []
        for subscription in targets:
            try:
                if subscription.channel.offer(event):
                    delivered += 1
                else:
                    logger.warning(
                        "Dropped event for slow subscriber",
                        conversation_id=event.conversation_id,
                        message_id=event.message.id,
                        subscription_id=subscription.handle.id,
                    )
            except ChannelClosed:
                stale.append(subscription)

        for subscription in stale:
            logger.debug("Cleaning up stale subscription", subscription_id=subscription.handle.id)
            self.unsubscribe(subscription.handle)

        return delivered

    async def _on_event(self, event: DeliveryEvent) -> None:
        self.dispatch(event)

    def subscription_count(self, conversation_id: str | None = None) -> int:
        """Number of active subscriptions, overall or for one conversation."""
        with self._lock:
            if conversation_id is None:
                return sum(len(group) for group in self._subscriptions.values())
            return len(self._subscriptions.get(conversation_id, {}))
