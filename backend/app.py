from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI

from backend.core.config import settings
from backend.core.observability import init_observability
from backend.core.observability.health import router as health_router
from backend.apps.scheduler.api_ops import router as scheduler_ops_router


def _default_scheduler_factory():
    from agents.comm_scheduler.factory import create_scheduler

    return create_scheduler()


def create_app(scheduler_factory: Callable | None = None) -> FastAPI:
    init_observability()
    scheduler_factory = scheduler_factory or _default_scheduler_factory

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.scheduler = None
        if settings.SCHEDULER_ENABLED:
            app.state.scheduler = scheduler_factory()
            app.state.scheduler.start()
        try:
            yield
        finally:
            if app.state.scheduler is not None:
                app.state.scheduler.stop()
                app.state.scheduler.dispatcher.close()

    app = FastAPI(title="Communication Scheduler", lifespan=lifespan)

    # Routers
    app.include_router(health_router)
    app.include_router(scheduler_ops_router)

    return app


# ASGI app instance
app = create_app()
