import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..config import settings
from ..database import ping_database
from ..limiter import limiter

router = APIRouter(tags=["health"])

STARTED_AT = time.monotonic()


@router.get("/health")
@limiter.limit("60/minute")
def health(request: Request):
    return {"ok": True, "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/health/live")
def liveness():
    return {"ok": True}


@router.get("/health/ready")
def readiness():
    if not ping_database():
        return JSONResponse(status_code=503, content={"ok": False, "database": "down"})
    return {"ok": True, "database": "up"}


@router.get("/health/detailed")
async def detailed_health(request: Request):
    database_ok = ping_database()

    pool = getattr(request.app.state, "arq_pool", None)
    if pool is None:
        queue_status = "unavailable"
    else:
        try:
            await pool.ping()
            queue_status = "up"
        except Exception:
            queue_status = "down"

    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={
            "ok": database_ok,
            "version": settings.app_version,
            "environment": settings.app_env,
            "uptime_seconds": round(time.monotonic() - STARTED_AT, 1),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {"database": "up" if database_ok else "down", "queue": queue_status},
        },
    )
