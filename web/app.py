"""
FastAPI application for the villa onboarding backend.

Settings come from utils.config.Config (environment variables). In
production the interactive docs are off and CORS only admits the origins
listed in ALLOWED_ORIGINS.
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.progress import OnboardingError, error_response
from utils.config import Config
from utils.logging import configure_logging
from web.onboarding_routes import router as onboarding_router


logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


def create_app(config: Optional[Config] = None) -> FastAPI:
    """Build the onboarding API."""
    config = config or Config.load()
    docs_enabled = not config.production

    app = FastAPI(
        title="Villa Onboarding",
        description="Versioned autosave backend for the villa onboarding wizard",
        version=API_VERSION,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
        debug=config.debug_enabled,
    )

    # Liveness probes; registered before anything that touches storage
    @app.get("/", include_in_schema=False)
    def root():
        return {"status": "ok"}

    @app.get("/health", include_in_schema=False)
    def health():
        return {"status": "healthy"}

    origins = config.cors_origins()
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PATCH"],
            allow_headers=["*"],
        )

    @app.exception_handler(OnboardingError)
    async def onboarding_error_handler(request: Request, exc: OnboardingError):
        status_code, body = error_response(exc)
        if status_code >= 500:
            logger.error("Unhandled onboarding error on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=status_code, content=body)

    @app.on_event("startup")
    def on_startup():
        configure_logging(config.debug_enabled)
        Path(config.data_dir).mkdir(parents=True, exist_ok=True)
        logger.info("Villa onboarding backend started (data dir %s)", config.data_dir)

    app.include_router(onboarding_router)

    @app.get("/api/health")
    async def api_health():
        return {
            "status": "healthy",
            "version": API_VERSION,
            "environment": "production" if config.production else "development",
        }

    return app


# Create app instance for uvicorn
app = create_app()
