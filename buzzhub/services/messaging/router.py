"""Message router - the write path from a sender to live subscribers."""

from datetime import datetime

import structlog

from buzzhub.core.exceptions import ConversationNotFound, InvalidInput, NotParticipant
from buzzhub.models import Conversation, DeliveryEvent, Message
from buzzhub.services.delivery.bus import DeliveryBus
from buzzhub.storage.base import StorageBackend

logger = structlog.get_logger()


class MessageRouter:
    """Persists messages and hands them to the delivery bus.

    Persistence decides success. Once the store accepts a message it is
    returned to the caller even if publishing fails; publish errors are
    logged and never surfaced.
    """

    def __init__(self, storage: StorageBackend, bus: DeliveryBus) -> None:
        self.storage = storage
        self.bus = bus

    async def send(self, conversation_id: str, sender_id: str, body: str) -> Message:
        """Store a message and fan it out.

        Args:
            conversation_id: Target conversation
            sender_id: Authenticated sender (trusted)
            body: Message text

        Returns:
            The stored message

        Raises:
            InvalidInput: If any argument is empty
            ConversationNotFound: If the conversation does not exist
            NotParticipant: If the sender is not in the conversation
            StoreUnavailable: If the store cannot be reached
        """
        if not conversation_id:
            raise InvalidInput("conversation_id must not be empty", field="conversation_id")
        if not sender_id:
            raise InvalidInput("sender_id must not be empty", field="sender_id")
        if not body or not body.strip():
            raise InvalidInput("Message body must not be empty", field="body")

        message = await self.storage.append(conversation_id, sender_id, body)

        try:
            queued = self.bus.publish(DeliveryEvent(conversation_id=conversation_id, message=message))
            logger.info(
                "Message sent",
                conversation_id=conversation_id,
                message_id=message.id,
                sender_id=sender_id,
                subscribers=queued,
            )
        except Exception as e:
            logger.error(
                "Failed to publish message",
                conversation_id=conversation_id,
                message_id=message.id,
                error=str(e),
                exc_info=True,
            )

        return message

    async def authorize(self, conversation_id: str, user_id: str) -> Conversation:
        """Fetch a conversation the user takes part in.

        Raises:
            ConversationNotFound: If the conversation does not exist
            NotParticipant: If the user is not in the conversation
        """
        conversation = await self.storage.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        if not conversation.is_participant(user_id):
            raise NotParticipant(conversation_id, user_id)
        return conversation

    async def list_messages(
        self,
        conversation_id: str,
        user_id: str,
        after: datetime | None = None,
        limit: int | None = None,
    ) -> list[Message]:
        """Message history visible to a participant, in store order."""
        await self.authorize(conversation_id, user_id)
        return await self.storage.list_messages(conversation_id, after=after, limit=limit)

    async def create_conversation(self, creator_id: str, participant_ids: list[str]) -> Conversation:
        """Start a conversation; the creator is always its first participant."""
        participants = [creator_id, *[p for p in participant_ids if p]]
        if len(set(participants)) < 2:
            raise InvalidInput(
                "A conversation needs at least one other participant",
                field="participant_ids",
            )
        for user_id in participants[1:]:
            if await self.storage.get_user(user_id) is None:
                raise InvalidInput(f"Unknown participant: {user_id}", field="participant_ids")

        conversation = await self.storage.create_conversation(participants)
        logger.info(
            "Created conversation",
            conversation_id=conversation.id,
            participants=conversation.participant_ids,
        )
        return conversation

    async def list_conversations(self, user_id: str, limit: int = 50) -> list[Conversation]:
        return await self.storage.list_conversations(user_id, limit=limit)

    async def mark_conversation_read(self, conversation_id: str, user_id: str) -> Conversation:
        return await self.storage.mark_conversation_read(conversation_id, user_id)
