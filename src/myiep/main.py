"""
MyIEP Tracker FastAPI Application

Local HTTP surface over the tracker engine: sync control, lifecycle events,
student detail and backup export/import.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from myiep import __version__
from myiep.api.v1 import data, sync
from myiep.config import settings
from myiep.core.database import AsyncSessionLocal, close_db, init_db
from myiep.core.errors import MyIEPError
from myiep.gateway import CloudBackupGateway, GoogleDriveGateway, InMemoryGateway
from myiep.media import MediaStaging
from myiep.store import RecordStore, migrate_legacy_storage
from myiep.sync import SyncController
from myiep.tracker import Tracker

logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None) -> None:
    """Apply the configured log level to the root logger."""
    logging.basicConfig(
        level=level or settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def build_gateway() -> CloudBackupGateway:
    """Drive when credentials are configured, otherwise the in-memory cloud."""
    if settings.drive_configured:
        return GoogleDriveGateway.from_settings()

    logger.warning("Google Drive not configured; using in-memory backup")
    return InMemoryGateway(authenticated=False)


async def build_tracker() -> Tracker:
    """Create tables, run the legacy migration and wire the components."""
    await init_db()

    store = RecordStore(AsyncSessionLocal)
    report = await migrate_legacy_storage(store)
    if not report.already_migrated:
        logger.info(f"Legacy data migrated: {report.logs_migrated} logs")

    staging = MediaStaging()
    controller = SyncController(store, build_gateway(), staging)
    return Tracker(store, controller, staging)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events.

    Startup:
    - Create the local database and migrate legacy data
    - Build the tracker and start the sync poll

    Shutdown:
    - Stop sync and wait for background uploads
    - Close database connections
    """
    logger.info("MyIEP Tracker starting...")

    owns_tracker = getattr(app.state, "tracker", None) is None
    if owns_tracker:
        app.state.tracker = await build_tracker()
    await app.state.tracker.start()

    logger.info("MyIEP Tracker ready")

    yield

    logger.info("MyIEP Tracker shutting down...")
    await app.state.tracker.stop()
    if owns_tracker:
        await close_db()
    logger.info("Shutdown complete")


def create_app(tracker: Tracker | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        tracker: Pre-built tracker (tests); built in the lifespan when omitted

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="MyIEP Tracker",
        description="Local-first IEP goal tracking with personal cloud backup",
        version=__version__,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )
    app.state.tracker = tracker

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_local else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check endpoints
    @app.get("/", tags=["Health"])
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "service": "MyIEP Tracker",
            "status": "operational",
            "version": __version__,
            "environment": settings.ENVIRONMENT,
        }

    @app.get("/health", tags=["Health"], response_model=None)
    async def health_check() -> JSONResponse:
        """Health check endpoint.

        Returns:
            - status: healthy/unhealthy
            - checks: Individual health checks
        """
        checks: dict[str, dict[str, Any]] = {}
        current: Tracker | None = app.state.tracker

        if current is None:
            checks["store"] = {"status": "unhealthy", "error": "Tracker not initialized"}
        else:
            try:
                await current.store.get_last_sync_time()
                checks["store"] = {"status": "healthy"}
            except MyIEPError as e:
                checks["store"] = {"status": "unhealthy", "error": str(e)}

            checks["sync"] = {
                "status": "healthy",
                "state": current.sync.status.state.value,
                "authenticated": current.sync.gateway.is_authenticated(),
            }

        all_healthy = all(check["status"] == "healthy" for check in checks.values())
        status_code = 200 if all_healthy else 503

        return JSONResponse(
            status_code=status_code,
            content={
                "status": "healthy" if all_healthy else "unhealthy",
                "environment": settings.ENVIRONMENT,
                "checks": checks,
            },
        )

    # Register API routers
    app.include_router(sync.router, tags=["Sync"])
    app.include_router(data.router, tags=["Data"])

    return app


configure_logging()

# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "myiep.main:app",
        host="127.0.0.1",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
