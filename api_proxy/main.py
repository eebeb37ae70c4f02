"""
FastAPI API Proxy Application Factory
=====================================

This is the main entry point for the proxy service that sits between the
journal PWA (running entirely in the browser) and the OpenAI API.

Architecture:
    Browser PWA → API Proxy (this service) → OpenAI API

Routes:
    - OPTIONS /*    : CORS preflight
    - POST /        : Forward a ProxyEnvelope to an allow-listed destination
    - GET /health   : Health check endpoint

Environment Variables:
    - PROXY_SHARED_SECRET: Secret every envelope must carry (required)
    - OPENAI_API_KEY: Provider credential injected for OpenAI destinations
    - OPENAI_API_PREFIX: Prefix receiving the OpenAI credential (default: https://api.openai.com/)
    - ALLOWED_URL_PREFIXES: Comma-separated destination allow-list (default: https://api.openai.com/)
    - UPSTREAM_TIMEOUT_SECONDS: Outbound timeout (default: 30)
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn api_proxy.main:app --reload --host 0.0.0.0 --port 8787

    Production:
        uvicorn api_proxy.main:app --host 0.0.0.0 --port 8787 --workers 4
"""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .config import get_settings
from .models import HealthResponse
from .proxy import proxy_router
from .proxy.routes import CORS_ALLOW_ORIGIN


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Resolve configuration once from the environment
        - Configure logging
        - Log the service configuration (never secrets)
    """
    settings = get_settings()

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("api_proxy.main")

    logger.info(
        "Starting API proxy",
        extra={
            "allowed_prefixes": settings.allowed_url_prefixes_list,
            "upstream_timeout": settings.UPSTREAM_TIMEOUT_SECONDS,
            "log_level": settings.LOG_LEVEL,
        }
    )

    if not settings.OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY is not set, no provider credential will be injected")

    yield

    logger.info("API proxy shutdown complete")


def create_app() -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Lifespan management
        - Proxy routes
        - Exception handlers

    CORS is handled by the proxy routes themselves so the preflight answer
    is identical for every caller. Settings are not read here; they are
    resolved on startup and on first request.

    Returns:
        FastAPI: Configured application instance
    """
    app = FastAPI(
        title="API Proxy",
        description="Allow-listed forwarding proxy for browser-only applications",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )

    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="ok", service="api-proxy", version=__version__)

    app.include_router(proxy_router, tags=["Proxy"])

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger = logging.getLogger("api_proxy.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
            headers=CORS_ALLOW_ORIGIN,
        )

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "api_proxy.main:app",
        host=settings.PROXY_HOST,
        port=settings.PROXY_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
