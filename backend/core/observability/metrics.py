"""In-process metrics counters and histograms."""

import threading
from collections import defaultdict
from typing import Any

from backend.core.config import settings


def _new_metric() -> dict[str, Any]:
    return {"count": 0, "sum": 0.0, "min": None, "max": None, "buckets": defaultdict(int)}


# Global metrics storage; histograms keep running aggregates only
_metrics = defaultdict(_new_metric)
_lock = threading.Lock()


def _key(name: str, labels: dict[str, str] | None) -> str:
    if not labels:
        return name
    return name + "{" + ",".join(f"{k}={v}" for k, v in sorted(labels.items())) + "}"


def increment_counter(name: str, labels: dict[str, str] | None = None, value: float = 1.0) -> None:
    """Increment a counter metric."""
    if not settings.enable_metrics:
        return

    with _lock:
        _metrics[_key(name, labels)]["count"] += value


def record_histogram(name: str, value: float, labels: dict[str, str] | None = None) -> None:
    """Record a histogram measurement."""
    if not settings.enable_metrics:
        return

    with _lock:
        metrics = _metrics[_key(name, labels)]
        metrics["count"] += 1
        metrics["sum"] += value
        metrics["min"] = value if metrics["min"] is None else min(metrics["min"], value)
        metrics["max"] = value if metrics["max"] is None else max(metrics["max"], value)

        # Simple buckets for basic histogram visualization
        if value < 0.1:
            metrics["buckets"]["<0.1"] += 1
        elif value < 1:
            metrics["buckets"]["0.1-1.0"] += 1
        elif value < 10:
            metrics["buckets"]["1.0-10.0"] += 1
        elif value < 100:
            metrics["buckets"]["10.0-100.0"] += 1
        elif value < 1000:
            metrics["buckets"]["100.0-1000.0"] += 1
        else:
            metrics["buckets"][">=1000.0"] += 1


def get_metrics() -> dict[str, Any]:
    """Get current metrics snapshot."""
    if not settings.enable_metrics:
        return {"note": "metrics disabled"}

    result = {}
    with _lock:
        for key, data in _metrics.items():
            metric_result = {"count": data["count"], "sum": data["sum"]}

            if data["min"] is not None:
                metric_result.update(
                    {
                        "min": data["min"],
                        "max": data["max"],
                        "avg": data["sum"] / data["count"],
                        "buckets": dict(data["buckets"]),
                    }
                )

            result[key] = metric_result

    return result


def get_count(name: str, labels: dict[str, str] | None = None) -> float:
    with _lock:
        data = _metrics.get(_key(name, labels))
        return data["count"] if data else 0


def reset_metrics() -> None:
    """Reset all metrics (useful for testing)."""
    with _lock:
        _metrics.clear()


# Scheduler metrics
def increment_scheduler_cycles() -> None:
    """Increment counter for completed scheduler cycles."""
    increment_counter("scheduler_cycles_total")


def increment_scheduler_cycles_skipped() -> None:
    """Increment counter for ticks skipped by the overlap guard."""
    increment_counter("scheduler_cycles_skipped_total")


def increment_scheduler_cycle_errors() -> None:
    increment_counter("scheduler_cycle_errors_total")


def increment_rules_executed(trigger_type: str) -> None:
    increment_counter("scheduler_rules_executed_total", {"trigger_type": trigger_type})


def increment_dispatch_outcome(channel: str, status: str) -> None:
    """Count a per-recipient dispatch outcome by channel and status."""
    increment_counter("scheduler_dispatch_total", {"channel": channel, "status": status})


def record_cycle_duration(duration_ms: float) -> None:
    """Record scheduler cycle duration in milliseconds."""
    record_histogram("scheduler_cycle_duration_ms", duration_ms)
