"""ApoData API entry point: ``uvicorn app.main:app``."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.cache import close_cache
from app.core.config import Settings, get_settings
from app.core.database import get_engine
from app.core.exceptions import register_exception_handlers
from app.core.health import router as health_router
from app.core.logging import configure_logging, get_logger
from app.core.middleware import RequestIdMiddleware
from app.features.admin import router as admin_router
from app.features.auth import router as auth_router
from app.features.comparison import router as comparison_router
from app.features.exports import router as exports_router
from app.features.kpis import router as kpis_router
from app.features.maintenance import router as maintenance_router
from app.features.sales import router as sales_router
from app.features.saved_filters import router as saved_filters_router
from app.features.search import router as search_router

logger = get_logger(__name__)

# Health stays at the root; every feature router carries its /api prefix.
ROUTERS: tuple[APIRouter, ...] = (
    health_router,
    auth_router,
    kpis_router,
    comparison_router,
    sales_router,
    search_router,
    saved_filters_router,
    exports_router,
    admin_router,
    maintenance_router,
)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging on startup; release Redis and the DB pool on shutdown."""
    settings = get_settings()
    configure_logging()
    logger.info(
        "app.startup_completed",
        app_name=settings.app_name,
        app_env=settings.app_env,
        cache_enabled=settings.cache_enabled,
        mv_min_date=settings.mv_min_date.isoformat(),
    )

    yield

    await close_cache()
    await get_engine().dispose()
    logger.info("app.shutdown_completed")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Settings override, mainly for tests.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or get_settings()
    docs_enabled = settings.is_development

    app = FastAPI(
        title=settings.app_name,
        description="Sales, purchase and stock analytics for a pharmacy network",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )

    # Added last = outermost: request ids are bound before CORS answers preflights.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["Content-Disposition", "X-Request-ID", "X-Process-Time-Ms"],
    )
    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app)

    for router in ROUTERS:
        app.include_router(router)

    return app


app = create_app()
