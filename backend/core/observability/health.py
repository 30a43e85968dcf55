"""Health and readiness endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, Request
from sqlalchemy import text

router = APIRouter()
logger = logging.getLogger(__name__)


def get_version() -> str:
    """Get application version from the installed distribution or pyproject.toml."""
    try:
        from importlib.metadata import version

        return version("comm-scheduler")
    except Exception:
        try:
            import tomllib

            with open("pyproject.toml", "rb") as f:
                data = tomllib.load(f)
                return data.get("project", {}).get("version", "unknown")
        except Exception:
            return "dev"


def check_database(request: Request) -> str:
    """Check database connectivity with light query on the scheduler store engine."""
    scheduler = getattr(request.app.state, "scheduler", None)
    engine = getattr(getattr(scheduler, "store", None), "engine", None)
    if engine is None:
        return "SKIPPED"
    try:
        with engine.connect() as conn:
            row = conn.execute(text("SELECT 1 AS health_check")).first()
            return "OK" if row and row.health_check == 1 else "FAIL"
    except Exception as e:
        logger.warning("health_db_check_failed", extra={"error": str(e)})
        return "FAIL"


@router.get("/health/ready")
def readiness_check(request: Request) -> dict[str, Any]:
    """Readiness endpoint for load balancers."""
    db_status = check_database(request)

    response = {
        "status": "OK" if db_status in ("OK", "SKIPPED") else "DEGRADED",
        "version": get_version(),
        "db": db_status,
    }

    return response


@router.get("/health/live")
def liveness_check() -> dict[str, str]:
    """Liveness endpoint - always OK if service is running."""
    return {"status": "OK"}
