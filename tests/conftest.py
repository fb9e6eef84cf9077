"""Pytest configuration and fixtures."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from buzzhub.api.main import create_app
from buzzhub.models import User
from buzzhub.services.delivery import DeliveryBus, SubscriptionRegistry
from buzzhub.services.messaging import MessageRouter
from buzzhub.storage.memory import InMemoryStorage


def auth(user_id: str) -> dict[str, str]:
    """Headers the upstream auth proxy would forward for a user."""
    return {"x-user-id": user_id}


@pytest.fixture
def storage():
    """Create in-memory storage for tests."""
    return InMemoryStorage()


@pytest.fixture
def app(storage):
    """Create test application."""
    return create_app(storage=storage)


@pytest_asyncio.fixture
async def client(app):
    """Create test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await app.state.bus.close()


@pytest_asyncio.fixture
async def bus():
    """Delivery bus with short timeouts for tests."""
    bus = DeliveryBus(queue_size=64, handler_timeout=0.2)
    yield bus
    await bus.close()


@pytest.fixture
def registry(bus):
    """Subscription registry attached to the test bus."""
    return SubscriptionRegistry(bus)


@pytest.fixture
def message_router(storage, bus):
    """Message router over in-memory storage."""
    return MessageRouter(storage, bus)


@pytest_asyncio.fixture
async def users(storage):
    """Alice and Bob chat together; Dave is an outsider."""
    return {
        uid: await storage.upsert_user(User(id=uid, username=uid, name=uid.title()))
        for uid in ("alice", "bob", "dave")
    }


@pytest_asyncio.fixture
async def conversation(storage, users):
    """Conversation between Alice and Bob."""
    return await storage.create_conversation(["alice", "bob"])
