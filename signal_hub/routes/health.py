# signal_hub/routes/health.py
"""
Health and introspection endpoints.
"""

import time

from fastapi import APIRouter, Depends

from signal_hub.config import settings
from signal_hub.db.pool import db_health_check
from signal_hub.infrastructure.observability.logging import log_health_check
from signal_hub.realtime.hub import Hub
from signal_hub.routes.dependencies import get_hub

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "signal-hub"}


@router.get("/health")
async def health(hub: Hub = Depends(get_hub)):
    """Live connection and call counts."""
    return {"status": "ok", **hub.stats()}


@router.get("/readyz")
async def readyz(hub: Hub = Depends(get_hub)):
    """
    Readiness check: database pool plus the live realtime counters.
    """
    checks = {}
    overall_ok = True

    t0 = time.time()
    try:
        db_health = await db_health_check()
        is_healthy = db_health.get("healthy", False)
        latency_ms = round((time.time() - t0) * 1000, 1)

        checks["database"] = {"ok": is_healthy, "latency_ms": latency_ms}

        if "pool_stats" in db_health:
            pool_stats = db_health["pool_stats"]
            checks["database"].update(
                {
                    "pool_size": pool_stats.get("pool_size", 0),
                    "pool_available": pool_stats.get("pool_available", 0),
                    "pool_utilization_percent": pool_stats.get("pool_utilization_percent", 0),
                }
            )

        if "warnings" in db_health:
            checks["database"]["warnings"] = db_health["warnings"]

        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")

        log_health_check("database", is_healthy, latency_ms, db_health.get("error"))
        overall_ok = overall_ok and is_healthy

    except Exception as e:
        checks["database"] = {
            "ok": False,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = False

    checks["realtime"] = {"ok": True, **hub.stats()}
    checks["configuration"] = {"ok": True, "environment": settings.environment}

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}


@router.get("/health/database")
async def database_health():
    """Detailed database pool health information."""
    return await db_health_check()
