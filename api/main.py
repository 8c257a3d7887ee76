"""
Main FastAPI application for the lead intake engine.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from .routes import leads, roster, analytics
from .services import get_services, initialize_services
from .middleware.metrics import MetricsMiddleware, metrics_endpoint
from .middleware.rate_limit import RateLimitMiddleware
from config.settings import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info(f"{settings.app_name} starting up...")

    # Initialize database (if configured)
    session_factory = None
    if settings.database_url:
        try:
            from database.session import init_db
            session_factory = await init_db(settings.database_url)
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Database init failed (running without DB): {e}")

    initialize_services(session_factory=session_factory)
    seeded = await get_services().seed_roster()
    if seeded:
        logger.info(f"Roster seeded with {seeded} members")

    restored = await get_services().restore_pending()
    if restored:
        logger.info(f"Restored {restored} leads waiting for routing")

    logger.info(f"{settings.app_name} ready")
    yield
    logger.info(f"{settings.app_name} shutting down...")

    if session_factory is not None:
        from database.session import close_db
        await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Lead Intake API",
        description="Scores contact-form leads and routes them to legal practice teams.",
        version=settings.api_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Prometheus metrics middleware
    app.add_middleware(MetricsMiddleware)

    # Rate limiting middleware
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=settings.rate_limit_per_minute,
    )

    # --- Routers ---
    app.include_router(leads.router, prefix="/api/v1", tags=["Leads"])
    app.include_router(roster.router, prefix="/api/v1", tags=["Roster"])
    app.include_router(analytics.router, prefix="/api/v1", tags=["Analytics"])

    # --- Prometheus metrics endpoint ---
    app.get("/metrics", tags=["Monitoring"])(metrics_endpoint)

    # Root endpoint
    @app.get("/")
    async def root():
        return {
            "service": settings.app_name,
            "version": settings.api_version,
            "status": "operational",
            "docs": "/docs",
        }

    # Health check
    @app.get("/health")
    async def health():
        services = get_services()
        return {
            "status": "healthy" if services.is_ready else "degraded",
            "services": services.health(),
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
