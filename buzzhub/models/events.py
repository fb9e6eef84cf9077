"""Events fanned out to live subscribers. Never persisted."""

from enum import Enum

from pydantic import BaseModel, ConfigDict

from buzzhub.models.message import Message


class DeliveryEventType(str, Enum):
    """Kinds of delivery events."""

    NEW_MESSAGE = "new_message"


class DeliveryEvent(BaseModel):
    """A message in transit from the router to subscribers."""

    model_config = ConfigDict(frozen=True)

    conversation_id: str
    message: Message
    event_type: DeliveryEventType = DeliveryEventType.NEW_MESSAGE

    def to_wire(self) -> dict:
        """Serialize for a client connection."""
        return {
            "type": self.event_type.value,
            "conversation_id": self.conversation_id,
            "message": self.message.model_dump(mode="json"),
        }
