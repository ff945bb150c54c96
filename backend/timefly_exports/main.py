"""
TimeFly Exports - Main Application Entry Point
==============================================

Initializes the FastAPI application: export routes, middleware and the
long-lived objects (analytical store, artifact store, job runner) that live
for the whole process.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from timefly_exports import __version__
from timefly_exports.api.v1.metrics import router as metrics_router
from timefly_exports.api.v1.router import api_router
from timefly_exports.core.config import settings
from timefly_exports.core.database import AnalyticsStore
from timefly_exports.core.logging import configure_logging
from timefly_exports.middleware import AccessLogMiddleware, RequestIdMiddleware
from timefly_exports.services.artifact_store import ArtifactStore
from timefly_exports.services.audit_log import AuditLog
from timefly_exports.services.export_job import ExportJobCoordinator, ExportJobRunner
from timefly_exports.services.notifier import Notifier, ResendNotifier

logger = logging.getLogger(__name__)


def _open_state(app: FastAPI, store: AnalyticsStore, notifier: Notifier) -> None:
    artifacts = ArtifactStore(settings.EXPORT_DIR)
    artifacts.ensure_directory()
    audit_log = AuditLog(store)

    app.state.store = store
    app.state.artifacts = artifacts
    app.state.audit_log = audit_log
    app.state.runner = ExportJobRunner(
        ExportJobCoordinator(
            store=store,
            artifacts=artifacts,
            notifier=notifier,
            audit_log=audit_log,
        )
    )


def create_application(
    store: Optional[AnalyticsStore] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    """
    Application factory function.

    ``store`` and ``notifier`` default to ones built from settings; a given
    store is not disposed on shutdown (its owner does that).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        configure_logging()

        owned = store is None
        active_store = store or AnalyticsStore.from_settings()
        if owned and settings.is_development:
            try:
                await active_store.create_tables()
            except Exception as e:
                logger.warning(f"Could not create database tables: {e} - continuing without database")

        _open_state(app, active_store, notifier or ResendNotifier.from_settings())

        yield

        await app.state.runner.shutdown(settings.EXPORT_SHUTDOWN_GRACE_SECONDS)
        if owned:
            await active_store.dispose()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Bulk export of TimeFly activity data",
        version=__version__,
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Middleware (first added = last executed)
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIdMiddleware)

    @app.get("/health", tags=["Health"])
    async def health_check():
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": __version__,
            "active_exports": app.state.runner.active_jobs if hasattr(app.state, "runner") else 0,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    app.include_router(metrics_router, prefix="")
    app.include_router(api_router, prefix=settings.API_PREFIX)

    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level=settings.LOG_LEVEL.lower())
