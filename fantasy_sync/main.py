"""
Main FastAPI application for the fantasy game sync service.

Run with:
    uvicorn fantasy_sync.main:app --host 0.0.0.0 --port 8000
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from fantasy_sync.api.routes import sync, triggers
from fantasy_sync.core.config import Settings, get_settings
from fantasy_sync.core.database import create_db_engine, create_session_factory, init_db
from fantasy_sync.core.logging import configure_logging, get_logger
from fantasy_sync.core.metrics import update_scheduler_metrics
from fantasy_sync.core.middleware import CorrelationIdMiddleware
from fantasy_sync.core.scheduler import AutomationScheduler
from fantasy_sync.services.sync.runner import SyncJobRunner

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    runner: Optional[SyncJobRunner] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use (default: get_settings())
        session_factory: Pre-built session factory; when omitted the engine is
            created from DATABASE_URL at startup and tables are created
        runner: Pre-built job runner; when omitted one is built from settings
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """Application lifespan events."""
        logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

        engine = None
        factory = session_factory
        if factory is None:
            engine = create_db_engine(settings)
            init_db(engine)
            factory = create_session_factory(engine)

        job_runner = runner or SyncJobRunner.from_settings(settings, factory)
        app.state.settings = settings
        app.state.session_factory = factory
        app.state.runner = job_runner
        app.state.scheduler = None

        if settings.SCHEDULER_ENABLED:
            app.state.scheduler = AutomationScheduler(job_runner, settings)
            await app.state.scheduler.start()
            logger.info("Automation scheduler started")
        update_scheduler_metrics(app.state.scheduler)

        logger.info("Application started")

        yield

        if app.state.scheduler is not None:
            await app.state.scheduler.stop()
            logger.info("Automation scheduler stopped")
        if runner is None:
            await job_runner.close()
        if engine is not None:
            engine.dispose()
        logger.info("Shutting down application")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Partner fantasy game ingestion and campaign trigger service",
        lifespan=lifespan,
    )

    app.add_middleware(CorrelationIdMiddleware)

    # Must happen before any routes are added to the app
    Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    app.include_router(sync.router)
    app.include_router(triggers.router)

    @app.get("/health")
    async def health_check(request: Request):
        """Health check with database and scheduler status."""
        database = "connected"
        db = request.app.state.session_factory()
        try:
            db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"Health check database error: {e}")
            database = "unavailable"
        finally:
            db.close()

        scheduler = request.app.state.scheduler
        return {
            "status": "healthy" if database == "connected" else "degraded",
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "database": database,
            "scheduler": bool(scheduler and scheduler.running),
        }

    return app


_settings = get_settings()

# Configure structured logging with JSON formatter
configure_logging(level=_settings.LOG_LEVEL, json_output=_settings.LOG_JSON)

app = create_app(_settings)
