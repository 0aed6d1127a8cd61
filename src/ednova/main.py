"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from ednova.admin.router import router as admin_router
from ednova.announcements.router import router as announcements_router
from ednova.auth.router import router as auth_router
from ednova.config import Settings, get_settings
from ednova.courses.router import router as courses_router
from ednova.gamification.router import router as gamification_router
from ednova.health.router import router as health_router
from ednova.middleware import setup_middleware
from ednova.payments.router import router as payments_router
from ednova.progress.router import router as progress_router
from ednova.redis_client import close_redis, init_redis
from ednova.superadmin.router import router as superadmin_router
from ednova.tenancy.registry import build_registry

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_redis(settings.redis_url)
    logger.info("app_started", environment=settings.environment, version=settings.app_version)

    yield

    await app.state.tenant_registry.close()
    await close_redis()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Ednova API",
        description="Multi-tenant gamified learning management backend",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.tenant_registry = build_registry(settings)

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(gamification_router)
    app.include_router(courses_router)
    app.include_router(progress_router)
    app.include_router(payments_router)
    app.include_router(announcements_router)
    app.include_router(admin_router)
    app.include_router(superadmin_router)

    if settings.storage_provider == "local":
        app.mount("/media", StaticFiles(directory=settings.storage_local_root, check_dir=False), name="media")

    return app


app = create_app()
