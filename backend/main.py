"""
BioTriage - Backend Entrypoint

FastAPI application factory and server configuration.
Run with: uvicorn main:app --reload (from the backend/ directory)
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from biotriage import __version__
from biotriage.api import routes
from biotriage.config import settings
from biotriage.core.exceptions import BioTriageError
from biotriage.core.logging import setup_structured_logging
from biotriage.core.pipeline import create_pipeline

setup_structured_logging(level=settings.app_log_level, json_format=settings.log_json)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
        - Create the triage pipeline from settings
        - Validate configuration (unknown ruleset fails fast)

    Shutdown:
        - Nothing is persisted; only logs the stop
    """
    # === Startup ===
    logger.info("BioTriage starting in %s mode", settings.app_env)

    pipeline = create_pipeline(settings)
    app.state.pipeline = pipeline
    app.state.settings = settings

    logger.info("Pipeline initialized and ready")
    logger.info(
        "   Privacy: anonymize_logs=%s, max_audio_seconds=%.1f",
        settings.anonymize_logs,
        settings.max_audio_seconds,
    )

    yield

    # === Shutdown ===
    logger.info("BioTriage shutting down")


async def biotriage_error_handler(request: Request, exc: BioTriageError) -> JSONResponse:
    """Map core errors to their status code and a {code, message, details} body."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    """Application factory."""

    app = FastAPI(
        title="BioTriage",
        description="Multimodal triage API: voice, facial telemetry and symptom questionnaire",
        version=__version__,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
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

    # --- Errors ---
    app.add_exception_handler(BioTriageError, biotriage_error_handler)

    # --- Routes ---
    app.include_router(routes.router, prefix="/api")

    @app.get("/")
    async def root():
        """Root service info."""
        return {
            "service": "BioTriage",
            "status": "operational",
            "version": __version__,
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        reload=settings.app_debug,
    )
