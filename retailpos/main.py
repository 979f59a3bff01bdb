"""
Retail POS auth service: application entry point.

This is the **only** file that assembles the app. Business logic lives in
the `services/`, `repositories/` and `core/` packages; routes live in
`api/` and `web/`.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from retailpos.api.v1.api import api_router
from retailpos.core.config import settings
from retailpos.core.exceptions import register_exception_handlers
from retailpos.core.limiter import limiter
from retailpos.db.base import Base
from retailpos.db.session import engine

# Ensure all models are imported so metadata.create_all can see them
from retailpos.models.user import User  # noqa: F401
from retailpos.web.pages import router as pages_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    if settings.ADMIN_INITIAL_EMAIL:
        logger.info("Initial admin bootstrap enabled via forgot-password")

    logger.info("%s v%s started", settings.PROJECT_NAME, settings.VERSION)
    yield
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Retail POS authentication, authorization and credential reset",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Rate limiting (slowapi looks the limiter up on app.state)
    application.state.limiter = limiter

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    # Mount API v1
    application.include_router(api_router, prefix=settings.API_V1_PREFIX)

    # Role-gated UI landing pages
    application.include_router(pages_router)

    return application


app = create_app()
