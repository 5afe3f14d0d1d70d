from __future__ import annotations

import logging

from fastapi import FastAPI

from hirepipe.api.router import api_router
from hirepipe.core.config import settings
from hirepipe.core.errors import PipelineError, pipeline_error_handler
from hirepipe.db.session import init_models
from hirepipe.jobs.scheduler import start_scheduler
from hirepipe.middleware.logging import RequestLoggingMiddleware
from hirepipe.middleware.request_context import RequestContextMiddleware

logging.basicConfig(level=logging.INFO)
logging.getLogger("apscheduler").setLevel(logging.WARNING)
logging.getLogger("apscheduler.scheduler").setLevel(logging.WARNING)
logger = logging.getLogger("hirepipe")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_exception_handler(PipelineError, pipeline_error_handler)

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "environment": settings.environment}

    app.include_router(api_router)

    @app.on_event("startup")
    async def _startup() -> None:
        if settings.auto_create_tables:
            await init_models()
        if settings.enable_scheduler:
            app.state.scheduler = start_scheduler()
            logger.info("scheduler_started", extra={"interval_minutes": settings.sla_sweep_interval_minutes})

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        scheduler = getattr(app.state, "scheduler", None)
        if scheduler:
            scheduler.shutdown()

    return app


app = create_app()
