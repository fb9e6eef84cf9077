"""Conversation models."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from buzzhub.models.message import utcnow


class ConversationParticipant(BaseModel):
    """A user taking part in a conversation, with their read state."""

    user_id: str
    has_seen_latest_message: bool = True


class Conversation(BaseModel):
    """A fixed set of participants sharing a message history."""

    id: str = Field(..., description="Unique conversation identifier")
    participants: list[ConversationParticipant] = Field(..., min_length=1)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    latest_message_id: str | None = None

    @field_validator("participants")
    @classmethod
    def _dedupe_participants(
        cls, value: list[ConversationParticipant]
    ) -> list[ConversationParticipant]:
        seen: set[str] = set()
        unique = []
        for participant in value:
            if participant.user_id in seen:
                continue
            seen.add(participant.user_id)
            unique.append(participant)
        return unique

    @property
    def participant_ids(self) -> list[str]:
        """Participant user IDs in creation order."""
        return [p.user_id for p in self.participants]

    def is_participant(self, user_id: str) -> bool:
        """Check if a user is a participant in this conversation."""
        return any(p.user_id == user_id for p in self.participants)

    def record_message(self, message_id: str, sender_id: str, at: datetime) -> None:
        """Point the conversation at its newest message and reset read state."""
        self.latest_message_id = message_id
        self.updated_at = at
        for participant in self.participants:
            participant.has_seen_latest_message = participant.user_id == sender_id

    def mark_read(self, user_id: str) -> None:
        """Mark the latest message as seen by a participant."""
        for participant in self.participants:
            if participant.user_id == user_id:
                participant.has_seen_latest_message = True
