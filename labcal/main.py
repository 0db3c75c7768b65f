"""
LabCal — FastAPI Application.

Entry point for the calibration API server.
Run: uvicorn labcal.main:app --host 0.0.0.0 --port 8000 --reload

  - POST /api/v1/calibration/sessions          ← open a calibration session
  - POST /api/v1/calibration/sessions/{id}/…   ← advance the session
  - GET  /health                               ← liveness probe
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from labcal.api.routers.sessions import router as sessions_router
from labcal.config import Settings, settings as default_settings
from labcal.errors import register_exception_handlers
from labcal.log_config import configure_logging
from labcal.middleware.error_handler import ErrorHandlerMiddleware
from labcal.middleware.request_context import RequestContextMiddleware
from labcal.services import build_session_registry
from labcal.sessions.registry import SessionRegistry

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[SessionRegistry] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or default_settings
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan: startup and shutdown."""
        logger.info(
            "labcal_starting",
            version=settings.app_version,
            environment=settings.environment,
            advisory_enabled=app.state.registry.adapter.enabled,
        )
        yield
        logger.info("labcal_shutdown")

    app = FastAPI(
        title=settings.app_name,
        description=(
            "# LabCal — Calibration Compliance Core\n\n"
            "Guides a calibration session for one piece of lab equipment, validates "
            "the captured measurements against versioned acceptance criteria and "
            "produces a compliance verdict.\n\n"
            "## Workflow\n"
            "PRECHECK → ENVIRONMENTAL → MEASURING → VALIDATING → COMPLETED "
            "(ABORTED from any open step)\n"
        ),
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_tags=[
            {"name": "health", "description": "Liveness probe"},
            {"name": "calibration", "description": "Calibration session workflow"},
        ],
    )

    app.state.settings = settings
    app.state.registry = registry if registry is not None else build_session_registry(settings)

    register_exception_handlers(app)

    # ── Middleware (last added = outermost) ───────────────────────────
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routes ────────────────────────────────────────────────────────
    app.include_router(sessions_router, prefix=settings.api_prefix)

    @app.get("/health", tags=["health"])
    async def health():
        """Liveness probe. Does not call the advisory service."""
        return {
            "status": "ok",
            "version": settings.app_version,
            "service": "labcal",
            "advisory_enabled": app.state.registry.adapter.enabled,
        }

    return app


app = create_app()
