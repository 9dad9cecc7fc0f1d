"""FastAPI application factory.

The app factory creates a FastAPI instance with:
- CORS middleware (configurable origins)
- Lifespan handler that builds and tears down the service graph
- Health endpoint at GET /api/health
- Planner and calendar routers
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from plansync import __version__
from plansync.api.deps import init_dependencies, shutdown_dependencies
from plansync.api.middleware import register_error_handlers
from plansync.api.routers.calendar import router as calendar_router
from plansync.api.routers.planner import router as planner_router
from plansync.config import PlanSyncConfig, load_config
from plansync.core.metrics import init_metrics
from plansync.core.telemetry import init_telemetry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build dependencies on startup and close them on shutdown."""
    config: PlanSyncConfig = app.state.config
    init_telemetry("plansync")
    init_metrics("plansync")
    await init_dependencies(config)

    yield

    await shutdown_dependencies()


def create_app(
    config: PlanSyncConfig | None = None,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    config:
        Service configuration used by the lifespan handler.  Defaults to an
        environment-only configuration.
    cors_origins:
        Allowed CORS origins.  Defaults to ``config.server.cors_origins``.
    """
    config = config or load_config()
    if cors_origins is None:
        cors_origins = config.server.cors_origins

    app = FastAPI(
        title="plansync API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.router.redirect_slashes = False

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(planner_router)
    app.include_router(calendar_router)

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    return app
