"""Abstract base class for storage backends."""

from abc import ABC, abstractmethod
from datetime import datetime

from buzzhub.models import Conversation, Message, User


class StorageBackend(ABC):
    """Abstract conversation store interface.

    The store is the single source of ordering truth: the ids and timestamps it
    assigns in ``append`` decide message order, not arrival order at callers.
    """

    # ==================== User Operations ====================

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None:
        """Get a user by ID."""
        ...

    @abstractmethod
    async def upsert_user(self, user: User) -> User:
        """Create a user, or refresh profile fields of an existing one.

        An existing username is never cleared by an upsert.
        """
        ...

    @abstractmethod
    async def set_username(self, user_id: str, username: str) -> User:
        """Claim a username for a user.

        Raises:
            UserNotFound: If the user does not exist
            UsernameTaken: If another user already holds the username
        """
        ...

    @abstractmethod
    async def search_users(
        self,
        query: str,
        exclude_user_id: str | None = None,
        limit: int = 20,
    ) -> list[User]:
        """Case-insensitive username substring search."""
        ...

    # ==================== Conversation Operations ====================

    @abstractmethod
    async def create_conversation(self, participant_ids: list[str]) -> Conversation:
        """Create a conversation with a fixed participant list."""
        ...

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by ID."""
        ...

    @abstractmethod
    async def list_conversations(self, user_id: str, limit: int = 50) -> list[Conversation]:
        """List conversations a user takes part in, most recently updated first."""
        ...

    @abstractmethod
    async def mark_conversation_read(self, conversation_id: str, user_id: str) -> Conversation:
        """Mark the latest message of a conversation as seen by a participant."""
        ...

    # ==================== Message Operations ====================

    @abstractmethod
    async def append(self, conversation_id: str, sender_id: str, body: str) -> Message:
        """Durably append a message to a conversation.

        Membership is validated before anything is written. The returned
        message carries a store-assigned id and a timestamp strictly greater
        than any earlier message of the same conversation.

        Raises:
            ConversationNotFound: If the conversation does not exist
            NotParticipant: If the sender is not a participant
            StoreUnavailable: If the backing store cannot be reached
        """
        ...

    @abstractmethod
    async def list_messages(
        self,
        conversation_id: str,
        after: datetime | None = None,
        limit: int | None = None,
    ) -> list[Message]:
        """Messages of a conversation in store order.

        Args:
            conversation_id: Conversation to read
            after: Only return messages created strictly after this time
            limit: Return at most this many (the oldest first)

        Raises:
            ConversationNotFound: If the conversation does not exist
        """
        ...

    # ==================== Health Check ====================

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if storage is healthy."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None
