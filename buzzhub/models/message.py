"""Message models."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize to UTC; naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Message(BaseModel):
    """A message stored in a conversation.

    Messages are immutable once the store has assigned their id and timestamp.
    Within a conversation they are ordered by ``(created_at, id)``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Store-assigned message identifier")
    conversation_id: str = Field(..., description="Owning conversation ID")
    sender_id: str = Field(..., description="User who sent the message")
    body: str = Field(..., description="Message text content")
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def sort_key(self) -> tuple[datetime, str]:
        """Key giving the store order of messages within a conversation."""
        return (self.created_at, self.id)
