"""
Mama Mind - Backend Entrypoint

FastAPI application factory and server configuration.
Run with: uvicorn main:app --reload (from backend/)
"""

from contextlib import asynccontextmanager
from typing import Optional
import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from mamamind import __version__
from mamamind.config import Settings, get_settings
from mamamind.api import health, routes, websocket
from mamamind.api.auth import Authenticator, create_authenticator
from mamamind.api.errors import register_error_handlers
from mamamind.core.datastore import Datastore, create_datastore
from mamamind.core.logging import correlation_id_var, setup_structured_logging
from mamamind.core.notifier import ChannelNotifier, NotificationPublisher
from mamamind.core.pipeline import create_orchestrator

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def create_app(
    settings: Optional[Settings] = None,
    datastore: Optional[Datastore] = None,
    notifier: Optional[NotificationPublisher] = None,
    authenticator: Optional[Authenticator] = None,
) -> FastAPI:
    """
    Application factory.

    Collaborators not passed in are built from settings during startup.
    """
    settings = settings or get_settings()

    setup_structured_logging(
        level=settings.app_log_level,
        json_format=settings.log_json_format,
        anonymize=settings.anonymize_logs,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Startup:
            - Build datastore, notifier, authenticator and orchestrator
            - Open datastore connections

        Shutdown:
            - Close datastore connections and HTTP clients
        """
        # === Startup ===
        logger.info("Mama Mind starting in %s mode", settings.app_env)

        channel = notifier or ChannelNotifier()
        orchestrator = create_orchestrator(
            settings,
            datastore=datastore or create_datastore(settings),
            notifier=channel,
        )
        auth = authenticator or create_authenticator(settings)

        # Store collaborators in app state for dependency injection
        app.state.settings = settings
        app.state.orchestrator = orchestrator
        app.state.notifier = channel
        app.state.authenticator = auth

        await orchestrator.startup()

        logger.info("Orchestrator initialized and ready")
        logger.info(
            "   Backends: datastore=%s, auth=%s, notify_on_critical=%s",
            settings.datastore_backend,
            settings.auth_backend,
            settings.notify_on_critical,
        )
        logger.info("   Privacy: anonymize_logs=%s", settings.anonymize_logs)

        yield

        # === Shutdown ===
        logger.info("Mama Mind shutting down")
        await orchestrator.shutdown()
        await auth.aclose()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Mama Mind",
        description="Vitals triage API for pregnancy monitoring",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )

    # --- Errors ---
    register_error_handlers(app)

    # --- Request correlation ---
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or f"req_{uuid.uuid4().hex[:12]}"
        token = correlation_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Routes ---
    app.include_router(routes.router, prefix="/api")
    app.include_router(health.router)
    app.include_router(websocket.router)

    # --- Service info at root ---
    @app.get("/")
    async def root():
        """Root service info."""
        return {
            "service": "Mama Mind",
            "status": "operational",
            "version": __version__,
        }

    return app


# Create app instance
app = create_app()
