"""Main FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

import uvicorn
from beartype import beartype
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import v1_router, webhooks_router
from .core.cache import get_cache
from .core.config import get_settings
from .core.database import get_database
from .core.logging_utils import get_logger
from .repositories.catalog import CachedCatalogRepository, PostgresCatalogRepository
from .repositories.quotes import PostgresQuoteRepository
from .repositories.tariffs import PostgresTariffRepository
from .schemas.common import APIInfo, HealthResponse
from .services.expiry_sweeper import ExpirySweeper
from .services.quote_lifecycle import QuoteLifecycle
from .services.tariff_resolver import TariffResolver

logger = get_logger(__name__)


def build_sweeper() -> ExpirySweeper:
    """Sweeper over the shared database pool and cache."""
    settings = get_settings()
    db = get_database()
    catalog = CachedCatalogRepository(
        PostgresCatalogRepository(db), get_cache(), settings.redis_ttl_seconds
    )
    lifecycle = QuoteLifecycle(
        PostgresQuoteRepository(db),
        catalog,
        TariffResolver(catalog, PostgresTariffRepository(db)),
        validity=timedelta(hours=settings.quote_validity_hours),
    )
    return ExpirySweeper(lifecycle, settings.expiry_sweep_interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle - startup and shutdown."""
    settings = get_settings()
    logger.info("Starting %s in %s mode", settings.app_name, settings.api_env)

    db = get_database()
    await db.connect()
    logger.info("Database connection pool initialized")

    cache = get_cache()
    try:
        await cache.connect()
        logger.info("Redis connection initialized")
    except Exception as e:  # noqa: BLE001
        # The catalog cache is optional; pricing reads Postgres directly
        logger.warning("Redis unavailable, catalog cache disabled: %s", e)

    sweeper: ExpirySweeper | None = None
    if settings.expiry_sweep_enabled:
        sweeper = build_sweeper()
        await sweeper.start()

    yield

    logger.info("Shutting down %s", settings.app_name)
    if sweeper is not None:
        await sweeper.stop()
    await db.disconnect()
    await cache.disconnect()
    logger.info("Connections closed")


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render domain errors as ``ErrorResponse`` bodies instead of ``{"detail": ...}``."""
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = {"success": False, "error": str(exc.detail), "error_code": None, "details": None}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@beartype
def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Insurance quoting, payment reconciliation and contract issuance",
        version=__version__,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(HTTPException, http_error_handler)

    app.include_router(v1_router)
    app.include_router(webhooks_router)

    @app.get("/")
    async def root() -> APIInfo:
        """Root endpoint returning API information."""
        return APIInfo(
            name=settings.app_name,
            version=__version__,
            environment=settings.api_env,
        )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Liveness check; reports connection state without querying."""
        return HealthResponse(
            version=__version__,
            database=get_database().is_connected,
            cache=get_cache().is_connected,
        )

    return app


# Create the application instance
app = create_app()


@beartype
def main() -> None:
    """Run the main application entry point."""
    settings = get_settings()

    uvicorn.run(
        "policy_issuance.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level="info" if not settings.is_production else "error",
    )


if __name__ == "__main__":
    main()
