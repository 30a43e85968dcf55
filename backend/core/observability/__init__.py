"""Minimal observability for logging, health checks and metrics.

Provides JSON logging, health/readiness endpoints, and in-process metrics
for the scheduler host without external dependencies.
"""
import uuid
from typing import Optional

from . import logging as logging_module
from . import metrics


def generate_trace_id() -> str:
    """Generate a new trace ID for request/worker context."""
    return str(uuid.uuid4())


def set_trace_id(trace_id: Optional[str] = None) -> str:
    """Set or generate trace ID for current thread context."""
    if not trace_id:
        trace_id = generate_trace_id()
    logging_module.set_trace_id(trace_id)
    return trace_id


def set_tenant_id(tenant_id: Optional[str] = None) -> str:
    """Set tenant ID for current thread context (default 'unknown')."""
    tenant_id = tenant_id or "unknown"
    logging_module.set_tenant_id(tenant_id)
    return tenant_id


def init_observability() -> None:
    """Initialize JSON logging; metrics need no setup and honour settings.enable_metrics."""
    logging_module.init_logging()


__all__ = [
    "logging_module",
    "metrics",
    "generate_trace_id",
    "set_trace_id",
    "set_tenant_id",
    "init_observability",
]
