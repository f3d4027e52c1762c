"""
EmoSense - HTTP Entrypoint

FastAPI application factory and server configuration.
Run with: uvicorn emosense.main:build_app --factory --reload
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from emosense import __version__
from emosense.api import routes
from emosense.config import Settings, get_settings
from emosense.core.logging import setup_structured_logging
from emosense.core.pipeline import RiskPipeline, create_pipeline
from emosense.core.session import SessionStore

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    pipeline: Optional[RiskPipeline] = None,
) -> FastAPI:
    """
    Application factory.

    Args:
        settings: Settings to use (default: cached environment settings)
        pipeline: Pre-built pipeline (tests inject one with a stub classifier)
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Startup:
            - Build the risk pipeline (fails fast on configuration errors)
            - Create the in-memory session store and start idle-session cleanup

        Shutdown:
            - Stop cleanup and end all sessions
            - Close the classifier's HTTP client
        """
        logger.info("EmoSense starting in %s mode", settings.app_env)

        app.state.pipeline = pipeline or create_pipeline(settings)
        app.state.session_store = SessionStore(app.state.pipeline, settings)
        await app.state.session_store.start()
        app.state.settings = settings

        logger.info(
            "Pipeline ready: classifier=%s, anonymize_logs=%s, max_sessions=%d",
            app.state.pipeline.classifier.client_id,
            settings.anonymize_logs,
            settings.max_sessions,
        )

        yield

        logger.info("EmoSense shutting down")
        await app.state.session_store.stop()
        await app.state.pipeline.shutdown()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="EmoSense",
        description="Multimodal emotional triage with crisis escalation",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )

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

    @app.get("/")
    async def root():
        """Root health check."""
        return {
            "service": "EmoSense",
            "status": "operational",
            "version": __version__,
        }

    return app


def build_app() -> FastAPI:
    """Uvicorn factory: configure logging from settings, then build the app."""
    settings = get_settings()
    setup_structured_logging(settings.app_log_level, json_format=settings.log_json)
    return create_app(settings)
