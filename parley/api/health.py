"""Health check endpoints"""
import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from parley import __version__
from parley.database import get_db

router = APIRouter(prefix="/health", tags=["health"])

# Track startup time
STARTUP_TIME = time.time()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("")
def health_check():
    """
    Basic health check endpoint

    Returns 200 if service is running
    """
    return {
        "status": "healthy",
        "service": "Parley",
        "version": __version__,
        "timestamp": _now_iso()
    }


@router.get("/ready")
def readiness_check(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """
    Readiness check - verifies the database is reachable

    Returns 200 if ready to serve traffic, 503 if not ready
    """
    checks = {
        "database": False,
        "database_latency_ms": None
    }

    try:
        start = time.time()
        db.execute(text("SELECT 1"))
        latency_ms = (time.time() - start) * 1000
        checks["database"] = True
        checks["database_latency_ms"] = round(latency_ms, 2)
    except Exception as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "checks": checks,
                "message": f"Database check failed: {str(e)}"
            },
        )

    if latency_ms > 1000:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "degraded",
                "checks": checks,
                "message": "Database latency is high"
            },
        )

    return {
        "status": "ready",
        "checks": checks,
        "timestamp": _now_iso()
    }


@router.get("/live")
def liveness_check():
    """
    Liveness check - verifies service is alive

    Used by Kubernetes liveness probe
    """
    return {
        "status": "alive",
        "uptime_seconds": round(time.time() - STARTUP_TIME, 2),
        "timestamp": _now_iso()
    }
