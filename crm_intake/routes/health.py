# crm_intake/routes/health.py
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from crm_intake.core.logging import get_structlog_logger
from crm_intake.db.session import health_check

logger = get_structlog_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def liveness():
    return {"ok": True, "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/health/ready")
async def readiness(request: Request) -> JSONResponse:
    """Database round-trip. Error details stay in the logs."""
    engine = getattr(request.app.state, "db_engine", None)
    if engine is None:
        db = {"status": "unhealthy", "timestamp": datetime.now(timezone.utc).isoformat()}
    else:
        db = await health_check(engine)

    healthy = db["status"] == "healthy"
    if not healthy:
        logger.warning("health.not_ready", database=db["status"])

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "ok": healthy,
            "database": db["status"],
            "response_time_ms": db.get("response_time_ms"),
            "timestamp": db["timestamp"],
        },
    )
