"""In-memory storage backend for development and testing."""

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta
from uuid import uuid4

import structlog

from buzzhub.core.exceptions import (
    ConversationNotFound,
    NotParticipant,
    UsernameTaken,
    UserNotFound,
)
from buzzhub.models import Conversation, ConversationParticipant, Message, User
from buzzhub.models.message import as_utc, utcnow
from buzzhub.storage.base import StorageBackend

logger = structlog.get_logger()


def next_timestamp(previous: datetime | None) -> datetime:
    """Current time, nudged forward so it is strictly after ``previous``."""
    now = utcnow()
    if previous is not None and now <= previous:
        now = previous + timedelta(microseconds=1)
    return now


class InMemoryStorage(StorageBackend):
    """In-memory storage implementation for development."""

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, list[Message]] = defaultdict(list)
        self._lock = asyncio.Lock()
        # Appends serialize per conversation only
        self._append_locks: dict[str, asyncio.Lock] = {}

    # ==================== User Operations ====================

    async def get_user(self, user_id: str) -> User | None:
        user = self._users.get(user_id)
        return user.model_copy() if user else None

    async def upsert_user(self, user: User) -> User:
        async with self._lock:
            existing = self._users.get(user.id)
            if existing:
                user = existing.model_copy(
                    update={
                        "email": user.email or existing.email,
                        "name": user.name or existing.name,
                        "image": user.image or existing.image,
                        "username": existing.username or user.username,
                    }
                )
            self._users[user.id] = user
            return user.model_copy()

    async def set_username(self, user_id: str, username: str) -> User:
        async with self._lock:
            user = self._users.get(user_id)
            if not user:
                raise UserNotFound(user_id)
            for other in self._users.values():
                if other.id != user_id and other.username == username:
                    raise UsernameTaken(username)
            user = user.model_copy(update={"username": username})
            self._users[user_id] = user
            return user.model_copy()

    async def search_users(
        self,
        query: str,
        exclude_user_id: str | None = None,
        limit: int = 20,
    ) -> list[User]:
        needle = query.lower()
        users = [
            u
            for u in self._users.values()
            if u.username and needle in u.username.lower() and u.id != exclude_user_id
        ]
        users.sort(key=lambda u: u.username or "")
        return [u.model_copy() for u in users[:limit]]

    # ==================== Conversation Operations ====================

    async def create_conversation(self, participant_ids: list[str]) -> Conversation:
        conversation = Conversation(
            id=str(uuid4()),
            participants=[ConversationParticipant(user_id=uid) for uid in participant_ids],
        )
        async with self._lock:
            self._conversations[conversation.id] = conversation
        return conversation.model_copy(deep=True)

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        conversation = self._conversations.get(conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    async def list_conversations(self, user_id: str, limit: int = 50) -> list[Conversation]:
        convs = [c for c in self._conversations.values() if c.is_participant(user_id)]
        convs.sort(key=lambda x: x.updated_at, reverse=True)
        return [c.model_copy(deep=True) for c in convs[:limit]]

    async def mark_conversation_read(self, conversation_id: str, user_id: str) -> Conversation:
        async with self._lock:
            conversation = self._require_conversation(conversation_id)
            if not conversation.is_participant(user_id):
                raise NotParticipant(conversation_id, user_id)
            conversation.mark_read(user_id)
            return conversation.model_copy(deep=True)

    # ==================== Message Operations ====================

    async def append(self, conversation_id: str, sender_id: str, body: str) -> Message:
        lock = self._append_locks.setdefault(conversation_id, asyncio.Lock())
        async with lock:
            conversation = self._require_conversation(conversation_id)
            if not conversation.is_participant(sender_id):
                raise NotParticipant(conversation_id, sender_id)

            history = self._messages[conversation_id]
            created_at = next_timestamp(history[-1].created_at if history else None)
            message = Message(
                id=str(uuid4()),
                conversation_id=conversation_id,
                sender_id=sender_id,
                body=body,
                created_at=created_at,
            )
            history.append(message)
            conversation.record_message(message.id, sender_id, created_at)

        logger.debug(
            "Appended message",
            conversation_id=conversation_id,
            message_id=message.id,
        )
        return message

    async def list_messages(
        self,
        conversation_id: str,
        after: datetime | None = None,
        limit: int | None = None,
    ) -> list[Message]:
        self._require_conversation(conversation_id)
        messages = sorted(self._messages.get(conversation_id, []), key=lambda m: m.sort_key)
        if after is not None:
            after = as_utc(after)
            messages = [m for m in messages if m.created_at > after]
        if limit is not None:
            messages = messages[:limit]
        return messages

    # ==================== Health Check ====================

    async def health_check(self) -> bool:
        return True

    # ==================== Development Helpers ====================

    def _require_conversation(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        return conversation

    async def clear_all(self) -> None:
        """Clear all data (for testing)."""
        self._users.clear()
        self._conversations.clear()
        self._messages.clear()
        self._append_locks.clear()

    async def seed_demo_users(self) -> list[User]:
        """Create a pair of demo users for local development."""
        return [
            await self.upsert_user(User(id="demo-alice", username="alice", name="Alice")),
            await self.upsert_user(User(id="demo-bob", username="bob", name="Bob")),
        ]
