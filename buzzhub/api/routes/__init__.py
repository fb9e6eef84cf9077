"""API routes."""

from buzzhub.api.routes.conversations import router as conversations_router
from buzzhub.api.routes.health import router as health_router
from buzzhub.api.routes.subscriptions import router as subscriptions_router
from buzzhub.api.routes.users import router as users_router

__all__ = ["conversations_router", "health_router", "subscriptions_router", "users_router"]
