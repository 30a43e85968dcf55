"""Operator view of the communication scheduler."""

from typing import Any

from fastapi import APIRouter, Request

from backend.core.observability.metrics import get_metrics

router = APIRouter(prefix="/ops")


@router.get("/scheduler")
def scheduler_status(request: Request) -> dict[str, Any]:
    """Running flag, last cycle report and metrics snapshot."""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        return {"enabled": False, "started": False, "running": False, "last_report": None, "metrics": get_metrics()}

    report = scheduler.last_report
    return {
        "enabled": True,
        "started": scheduler.is_started,
        "running": scheduler.is_running,
        "interval_seconds": scheduler.interval_seconds,
        "last_report": report.to_dict() if report else None,
        "metrics": {k: v for k, v in get_metrics().items() if k.startswith("scheduler_")},
    }
