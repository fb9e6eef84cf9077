"""Data models for the application."""

from buzzhub.models.conversation import Conversation, ConversationParticipant
from buzzhub.models.events import DeliveryEvent, DeliveryEventType
from buzzhub.models.message import Message
from buzzhub.models.user import User

__all__ = [
    # User
    "User",
    # Conversation
    "Conversation",
    "ConversationParticipant",
    # Message
    "Message",
    # Delivery
    "DeliveryEvent",
    "DeliveryEventType",
]
