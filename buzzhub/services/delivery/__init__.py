"""Live delivery - event bus, subscription registry and client channels."""

from buzzhub.services.delivery.bus import DeliveryBus
from buzzhub.services.delivery.channel import DeliveryChannel
from buzzhub.services.delivery.registry import SubscriptionHandle, SubscriptionRegistry

__all__ = ["DeliveryBus", "DeliveryChannel", "SubscriptionHandle", "SubscriptionRegistry"]
