"""Liveness and readiness probes."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from vidgen.db.base import db_is_healthy
from vidgen.db.redis import redis_is_healthy

router = APIRouter()

SERVICE_NAME = "vidgen-backend"


@router.get("/health")
async def health_check(request: Request):
    """Liveness. 503 once SIGTERM has been received so the balancer drains us."""
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(status_code=503, content={"status": "shutting_down", "service": SERVICE_NAME})
    return {"status": "healthy", "service": SERVICE_NAME}


@router.get("/ready")
async def readiness_check():
    """Readiness: Postgres for plans and keys, Redis for quota counters."""
    checks = {"database": await db_is_healthy(), "redis": await redis_is_healthy()}
    ready = all(checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "degraded", "checks": checks},
    )
