"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS,
lifespan wiring of the CRM (config store, Google connector, wizard,
coordinator), and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.insureflow.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.insureflow.api.v1.router import router as v1_router
from src.insureflow.config import get_settings
from src.insureflow.core.monitoring import MetricsMiddleware, get_metrics_response
from src.insureflow.core.redis import close_redis
from src.insureflow.crm.config_store import create_config_store
from src.insureflow.crm.coordinator import CRMCoordinator
from src.insureflow.crm.wizard import ConnectionWizard
from src.insureflow.services.gsuite import DriveService, GoogleConnector, SheetsGateway


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: wire the CRM and resume any saved connection."""
    import structlog

    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()

    gateway = SheetsGateway(settings.POLICY_SHEET_TITLE)
    wizard = ConnectionWizard(
        store=create_config_store(),
        connector=GoogleConnector(),
        gateway=gateway,
        drive=DriveService(),
        settings=settings,
    )
    coordinator = CRMCoordinator(wizard=wizard, gateway=gateway)

    app.state.wizard = wizard
    app.state.coordinator = coordinator

    # A saved connection must not block startup
    try:
        status = await wizard.resume()
        log.info(
            "startup.wizard_resumed",
            step=int(status.step),
            connected=status.connected,
        )
    except Exception:
        log.warning("startup.wizard_resume_failed", exc_info=True)

    yield

    wizard.cancel_pending()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="InsureFlow CRM API",
        version="0.1.0",
        description="Insurance agent CRM with Google Sheets sync",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router, prefix="/v1")

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
