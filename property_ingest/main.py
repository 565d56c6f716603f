"""
Property Ingest API - FastAPI application entry point.

Ingests UK residential listings from external scraping services,
normalizes them into one property record, caches fetches and keeps the
cache honest with a background reconciliation loop.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from property_ingest.api import router
from property_ingest.api.rate_limit import RateLimiter
from property_ingest.config import Settings, get_settings
from property_ingest.services.property_service import build_property_service

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Initializes the property service on startup (tables, cache probe,
    credential check), starts background reconciliation, and releases
    everything on shutdown.
    """
    settings: Settings = app.state.settings
    logger.info("Starting %s v%s (%s)", settings.app_name, settings.app_version, settings.environment)

    service = build_property_service(settings, transport=app.state.transport)
    app.state.property_service = service

    status = await service.initialize()
    if not status.adapter.success:
        logger.warning("Live fetching will fail until credentials are fixed: %s", status.adapter.message)

    service.start_background_tasks()
    yield

    logger.info("Shutting down %s", settings.app_name)
    await service.close()


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render errors as ``{"message": ...}`` bodies."""
    body = exc.detail if isinstance(exc.detail, dict) else {"message": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request body validation failures in the same ``{"message": ...}`` shape."""
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))

    logger.info("Rejected %s %s: %s", request.method, request.url.path, "; ".join(problems))
    return JSONResponse(
        status_code=422,
        content={"message": "; ".join(problems) or "Invalid request."},
    )



def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings to use instead of the environment's.
        transport: Optional httpx transport for the fetch adapter.

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Searches UK property listings through cached, live and fallback "
            "sources and saves selected listings for users."
        ),
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.transport = transport
    app.state.rate_limiter = RateLimiter(
        settings.rate_limit_requests,
        settings.rate_limit_window_seconds,
    )

    # Only the known frontends may call the API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.include_router(router)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict:
        """
        Health check endpoint.

        Returns basic application status for monitoring and load balancers.
        """
        service = getattr(app.state, "property_service", None)
        return {
            "status": "healthy",
            "app": settings.app_name,
            "version": settings.app_version,
            "cache": "ok" if service is not None and service.cache.ready else "unavailable",
        }

    @app.get("/", tags=["root"])
    async def root() -> dict:
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/health",
        }

    return app


# Create the application instance
app = create_app()
