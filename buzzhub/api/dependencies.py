"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from starlette.requests import HTTPConnection

from buzzhub.core.config import Settings, settings
from buzzhub.models import User
from buzzhub.services.delivery import DeliveryBus, SubscriptionRegistry
from buzzhub.services.messaging import MessageRouter
from buzzhub.storage.base import StorageBackend
from buzzhub.storage.memory import InMemoryStorage


def build_storage(config: Settings) -> StorageBackend:
    """Create the storage backend selected by configuration.

    Uses in-memory storage for development, SQLAlchemy when configured.
    """
    if config.storage_backend == "sql":
        from buzzhub.storage.sql import SQLStorage

        storage = SQLStorage(config.database_url, echo=config.database_echo)
        storage.create_schema()
        return storage
    return InMemoryStorage()


# Components live on app.state; each app instance owns its own set
def get_storage(connection: HTTPConnection) -> StorageBackend:
    return connection.app.state.storage


def get_bus(connection: HTTPConnection) -> DeliveryBus:
    return connection.app.state.bus


def get_registry(connection: HTTPConnection) -> SubscriptionRegistry:
    return connection.app.state.registry


def get_message_router(connection: HTTPConnection) -> MessageRouter:
    return connection.app.state.router


# Type aliases for cleaner dependency injection
StorageDep = Annotated[StorageBackend, Depends(get_storage)]
BusDep = Annotated[DeliveryBus, Depends(get_bus)]
RegistryDep = Annotated[SubscriptionRegistry, Depends(get_registry)]
MessageRouterDep = Annotated[MessageRouter, Depends(get_message_router)]


def resolve_user_id(connection: HTTPConnection) -> str | None:
    """Read the caller's identity as forwarded by the upstream auth proxy.

    WebSocket clients may also pass it as the ``user_id`` query parameter,
    since browsers cannot set headers on the upgrade request.
    """
    user_id = connection.headers.get(settings.auth_user_header)
    if not user_id and connection.scope["type"] == "websocket":
        user_id = connection.query_params.get("user_id")
    return user_id.strip() if user_id else None


async def get_current_user(
    connection: HTTPConnection,
    storage: StorageDep,
) -> User:
    """Resolve the authenticated user, provisioning them on first sight."""
    user_id = resolve_user_id(connection)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    user = await storage.get_user(user_id)
    if user is None:
        user = await storage.upsert_user(User(id=user_id))
    return user


CurrentUserDep = Annotated[User, Depends(get_current_user)]
