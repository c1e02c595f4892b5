# backend/routes/health.py
import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from config import settings
from database import get_db, utcnow

router = APIRouter(tags=["Health"])
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"
STARTED_AT = time.monotonic()


def _uptime() -> float:
    return round(time.monotonic() - STARTED_AT, 2)


@router.get("/")
def api_info():
    prefix = settings.API_PREFIX
    return {
        "success": True,
        "data": {
            "name": "Storefront API",
            "version": API_VERSION,
            "environment": settings.ENVIRONMENT,
            "endpoints": {
                "auth": f"{prefix}/auth",
                "users": f"{prefix}/users",
                "products": f"{prefix}/products",
                "cart": f"{prefix}/cart",
                "orders": f"{prefix}/orders",
                "wishlist": f"{prefix}/wishlist",
                "health": f"{prefix}/health",
            },
        },
    }


@router.get("/health")
def health():
    return {"status": "ok", "timestamp": utcnow().isoformat(), "uptime": _uptime()}


@router.get("/health/detailed")
def health_detailed(db: Session = Depends(get_db)):
    checks = {}
    started = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = {"status": "up", "latency_ms": round((time.perf_counter() - started) * 1000, 2)}
    except Exception as exc:
        logger.error("Database health check failed: %s", exc)
        checks["database"] = {"status": "down", "error": str(exc) if settings.is_development else "unavailable"}

    healthy = all(c["status"] == "up" for c in checks.values())
    body = {
        "status": "ok" if healthy else "degraded",
        "timestamp": utcnow().isoformat(),
        "uptime": _uptime(),
        "version": API_VERSION,
        "checks": checks,
    }
    return JSONResponse(status_code=200 if healthy else 503, content=body)


@router.get("/ready")
def ready(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("Readiness check failed: %s", exc)
        return JSONResponse(status_code=503, content={"status": "not ready"})
    return {"status": "ready"}


@router.get("/live")
def live():
    return {"status": "alive"}
