# carsuggester/routes/health.py
"""
Health check endpoints covering the database pool and the event sync buffer.
"""

import time

from fastapi import APIRouter, Request

from carsuggester.config import settings

router = APIRouter()

# Queue depth above which readiness reports a sync backlog
PENDING_EVENTS_WARNING = 5000


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "carsuggester-analytics"}


@router.get("/readyz")
async def readyz(request: Request):
    """
    Readiness check with the database pool, analytics buffer and configuration.
    """
    checks = {}
    overall_ok = True

    # 1) Database pool
    t0 = time.time()
    db_pool = getattr(request.app.state, "db_pool", None)
    try:
        if db_pool is None:
            checks["database"] = {"ok": False, "error": "Pool not initialized"}
            overall_ok = False
        else:
            db_health = await db_pool.health_check()
            is_healthy = db_health.get("healthy", False)
            checks["database"] = {
                "ok": is_healthy,
                "latency_ms": round((time.time() - t0) * 1000, 1),
            }
            if "pool_stats" in db_health:
                checks["database"]["pool_stats"] = db_health["pool_stats"]
            if "warnings" in db_health:
                checks["database"]["warnings"] = db_health["warnings"]
            if not is_healthy:
                checks["database"]["error"] = db_health.get("error", "Database unhealthy")
            overall_ok = overall_ok and is_healthy

    except Exception as e:
        checks["database"] = {
            "ok": False,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = False

    # 2) Analytics buffer
    analytics = getattr(request.app.state, "analytics", None)
    if analytics is None:
        checks["analytics"] = {"ok": False, "error": "Analytics service not initialized"}
        overall_ok = False
    else:
        buffer_status = analytics.buffer.status()
        sync_ok = buffer_status["is_running"] or not settings.ANALYTICS_SYNC_ENABLED
        checks["analytics"] = {"ok": sync_ok, **buffer_status}
        if buffer_status["pending"] > PENDING_EVENTS_WARNING:
            checks["analytics"]["warning"] = f"Sync backlog: {buffer_status['pending']} events"
        overall_ok = overall_ok and sync_ok

    # 3) Configuration
    config_issues = []
    if not settings.SUPABASE_DB_URL:
        config_issues.append("SUPABASE_DB_URL not set")
    if not settings.SUPABASE_URL:
        config_issues.append("SUPABASE_URL not set")

    checks["configuration"] = {
        "ok": not config_issues,
        "issues": config_issues or None,
        "environment": settings.environment,
    }
    overall_ok = overall_ok and not config_issues

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
