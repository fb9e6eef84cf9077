"""Relational storage backend built on the SQLAlchemy ORM."""

import asyncio
import threading
from collections.abc import Callable, Generator
from contextlib import contextmanager, nullcontext
from datetime import datetime
from typing import Any, TypeVar
from uuid import uuid4

import structlog
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, relationship, selectinload, sessionmaker
from sqlalchemy.pool import StaticPool

from buzzhub.core.exceptions import (
    ConversationNotFound,
    NotParticipant,
    StoreUnavailable,
    UsernameTaken,
    UserNotFound,
)
from buzzhub.models import Conversation, ConversationParticipant, Message, User
from buzzhub.models.message import as_utc, utcnow
from buzzhub.storage.base import StorageBackend
from buzzhub.storage.memory import next_timestamp

logger = structlog.get_logger()

T = TypeVar("T")

Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    username = Column(String(64), nullable=True, unique=True)
    email = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    image = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class ConversationRow(Base):
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    latest_message_id = Column(String(36), nullable=True)

    participants = relationship(
        "ParticipantRow",
        back_populates="conversation",
        order_by="ParticipantRow.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("idx_conversations_updated", "updated_at"),)


class ParticipantRow(Base):
    __tablename__ = "conversation_participants"

    conversation_id = Column(
        String(36), ForeignKey("conversations.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(String(64), primary_key=True)
    position = Column(Integer, nullable=False)
    has_seen_latest_message = Column(Boolean, nullable=False, default=True)

    conversation = relationship("ConversationRow", back_populates="participants")

    __table_args__ = (Index("idx_participants_user", "user_id"),)


class MessageRow(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True)
    conversation_id = Column(
        String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id = Column(String(64), nullable=False)
    body = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_messages_conversation_order", "conversation_id", "created_at", "id"),)


def _to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        name=row.name,
        image=row.image,
        created_at=as_utc(row.created_at),
    )


def _to_conversation(row: ConversationRow) -> Conversation:
    return Conversation(
        id=row.id,
        participants=[
            ConversationParticipant(
                user_id=p.user_id,
                has_seen_latest_message=p.has_seen_latest_message,
            )
            for p in row.participants
        ],
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        latest_message_id=row.latest_message_id,
    )


def _to_message(row: MessageRow) -> Message:
    return Message(
        id=row.id,
        conversation_id=row.conversation_id,
        sender_id=row.sender_id,
        body=row.body,
        created_at=as_utc(row.created_at),
    )


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; in-memory sqlite shares one connection across threads."""
    kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


class SQLStorage(StorageBackend):
    """SQLAlchemy storage implementation for production.

    ORM calls are synchronous and run in worker threads via ``asyncio.to_thread``.
    Appends to one conversation are serialized by a per-conversation lock and a
    row lock on the conversation, so timestamps are assigned in commit order.
    """

    def __init__(self, database_url: str, echo: bool = False, engine: Engine | None = None) -> None:
        self._engine = engine or build_engine(database_url, echo=echo)
        self._session_factory = sessionmaker(
            bind=self._engine, autoflush=False, expire_on_commit=False
        )
        # sqlite has a single writer; funnel every call through one lock
        self._db_lock = threading.Lock() if self._engine.dialect.name == "sqlite" else None
        self._append_locks: dict[str, threading.Lock] = {}
        self._append_locks_guard = threading.Lock()

    def create_schema(self) -> None:
        """Create tables that do not exist yet."""
        Base.metadata.create_all(self._engine)
        logger.info("Database schema ready", dialect=self._engine.dialect.name)

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _conversation_lock(self, conversation_id: str) -> threading.Lock:
        with self._append_locks_guard:
            return self._append_locks.setdefault(conversation_id, threading.Lock())

    def _call(self, operation: str, fn: Callable[[Session], T]) -> T:
        guard = self._db_lock if self._db_lock is not None else nullcontext()
        try:
            with guard, self._session() as session:
                return fn(session)
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            logger.error("Database operation failed", operation=operation, error=str(exc))
            raise StoreUnavailable(f"Database unavailable during {operation}", operation) from exc

    async def _run(self, operation: str, fn: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._call, operation, fn)

    @staticmethod
    def _load_conversation(session: Session, conversation_id: str, for_update: bool = False) -> ConversationRow:
        stmt = (
            select(ConversationRow)
            .where(ConversationRow.id == conversation_id)
            .options(selectinload(ConversationRow.participants))
        )
        if for_update:
            stmt = stmt.with_for_update()
        row = session.scalars(stmt).first()
        if row is None:
            raise ConversationNotFound(conversation_id)
        return row

    # ==================== User Operations ====================

    async def get_user(self, user_id: str) -> User | None:
        def fn(session: Session) -> User | None:
            row = session.get(UserRow, user_id)
            return _to_user(row) if row else None

        return await self._run("get_user", fn)

    async def upsert_user(self, user: User) -> User:
        def fn(session: Session) -> User:
            row = session.get(UserRow, user.id)
            if row is None:
                row = UserRow(
                    id=user.id,
                    username=user.username,
                    email=user.email,
                    name=user.name,
                    image=user.image,
                    created_at=user.created_at,
                )
                session.add(row)
            else:
                row.email = user.email or row.email
                row.name = user.name or row.name
                row.image = user.image or row.image
                row.username = row.username or user.username
            session.flush()
            return _to_user(row)

        return await self._run("upsert_user", fn)

    async def set_username(self, user_id: str, username: str) -> User:
        def fn(session: Session) -> User:
            row = session.get(UserRow, user_id)
            if row is None:
                raise UserNotFound(user_id)
            holder = session.scalars(
                select(UserRow).where(UserRow.username == username, UserRow.id != user_id)
            ).first()
            if holder is not None:
                raise UsernameTaken(username)
            row.username = username
            session.flush()
            return _to_user(row)

        try:
            return await self._run("set_username", fn)
        except IntegrityError as exc:
            # Lost a race with a concurrent claim of the same name
            raise UsernameTaken(username) from exc

    async def search_users(
        self,
        query: str,
        exclude_user_id: str | None = None,
        limit: int = 20,
    ) -> list[User]:
        def fn(session: Session) -> list[User]:
            stmt = (
                select(UserRow)
                .where(func.lower(UserRow.username).contains(query.lower(), autoescape=True))
                .order_by(UserRow.username)
                .limit(limit)
            )
            if exclude_user_id:
                stmt = stmt.where(UserRow.id != exclude_user_id)
            return [_to_user(row) for row in session.scalars(stmt)]

        return await self._run("search_users", fn)

    # ==================== Conversation Operations ====================

    async def create_conversation(self, participant_ids: list[str]) -> Conversation:
        conversation = Conversation(
            id=str(uuid4()),
            participants=[ConversationParticipant(user_id=uid) for uid in participant_ids],
        )

        def fn(session: Session) -> Conversation:
            row = ConversationRow(
                id=conversation.id,
                created_at=conversation.created_at,
                updated_at=conversation.updated_at,
                participants=[
                    ParticipantRow(user_id=p.user_id, position=i)
                    for i, p in enumerate(conversation.participants)
                ],
            )
            session.add(row)
            return conversation

        return await self._run("create_conversation", fn)

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        def fn(session: Session) -> Conversation | None:
            try:
                return _to_conversation(self._load_conversation(session, conversation_id))
            except ConversationNotFound:
                return None

        return await self._run("get_conversation", fn)

    async def list_conversations(self, user_id: str, limit: int = 50) -> list[Conversation]:
        def fn(session: Session) -> list[Conversation]:
            stmt = (
                select(ConversationRow)
                .join(ParticipantRow)
                .where(ParticipantRow.user_id == user_id)
                .options(selectinload(ConversationRow.participants))
                .order_by(ConversationRow.updated_at.desc())
                .limit(limit)
            )
            return [_to_conversation(row) for row in session.scalars(stmt)]

        return await self._run("list_conversations", fn)

    async def mark_conversation_read(self, conversation_id: str, user_id: str) -> Conversation:
        def fn(session: Session) -> Conversation:
            row = self._load_conversation(session, conversation_id)
            participant = next((p for p in row.participants if p.user_id == user_id), None)
            if participant is None:
                raise NotParticipant(conversation_id, user_id)
            participant.has_seen_latest_message = True
            session.flush()
            return _to_conversation(row)

        return await self._run("mark_conversation_read", fn)

    # ==================== Message Operations ====================

    async def append(self, conversation_id: str, sender_id: str, body: str) -> Message:
        def fn(session: Session) -> Message:
            with self._conversation_lock(conversation_id):
                row = self._load_conversation(session, conversation_id, for_update=True)
                if not any(p.user_id == sender_id for p in row.participants):
                    raise NotParticipant(conversation_id, sender_id)

                previous = session.scalar(
                    select(func.max(MessageRow.created_at)).where(
                        MessageRow.conversation_id == conversation_id
                    )
                )
                created_at = next_timestamp(as_utc(previous) if previous else None)
                message = Message(
                    id=str(uuid4()),
                    conversation_id=conversation_id,
                    sender_id=sender_id,
                    body=body,
                    created_at=created_at,
                )
                session.add(
                    MessageRow(
                        id=message.id,
                        conversation_id=conversation_id,
                        sender_id=sender_id,
                        body=body,
                        created_at=created_at,
                    )
                )
                row.latest_message_id = message.id
                row.updated_at = created_at
                for participant in row.participants:
                    participant.has_seen_latest_message = participant.user_id == sender_id
                # Commit while still holding the conversation lock
                session.commit()
                return message

        message = await self._run("append", fn)
        logger.debug("Appended message", conversation_id=conversation_id, message_id=message.id)
        return message

    async def list_messages(
        self,
        conversation_id: str,
        after: datetime | None = None,
        limit: int | None = None,
    ) -> list[Message]:
        def fn(session: Session) -> list[Message]:
            if session.get(ConversationRow, conversation_id) is None:
                raise ConversationNotFound(conversation_id)
            stmt = (
                select(MessageRow)
                .where(MessageRow.conversation_id == conversation_id)
                .order_by(MessageRow.created_at, MessageRow.id)
            )
            if after is not None:
                stmt = stmt.where(MessageRow.created_at > as_utc(after))
            if limit is not None:
                stmt = stmt.limit(limit)
            return [_to_message(row) for row in session.scalars(stmt)]

        return await self._run("list_messages", fn)

    # ==================== Health Check ====================

    async def health_check(self) -> bool:
        try:
            await self._run("health_check", lambda session: session.execute(select(1)).scalar())
            return True
        except StoreUnavailable:
            return False

    async def close(self) -> None:
        self._engine.dispose()
