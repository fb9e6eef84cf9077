"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter

from buzzhub.api.dependencies import BusDep, RegistryDep, StorageDep
from buzzhub.core.config import settings

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
@router.get("/")
async def health_check() -> dict[str, Any]:
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.app_env,
    }


@router.get("/ready")
async def readiness_check(
    storage: StorageDep,
    bus: BusDep,
    registry: RegistryDep,
) -> dict[str, Any]:
    """Readiness check - verifies the store is reachable."""
    checks = {"storage": await storage.health_check()}

    return {
        "status": "ready" if all(checks.values()) else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
        "delivery": {
            "bus_subscribers": bus.subscriber_count(),
            "active_subscriptions": registry.subscription_count(),
        },
    }


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    """Liveness check - basic endpoint for kubernetes probes."""
    return {"status": "alive"}
