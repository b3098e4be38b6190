from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
import uvicorn
import logging
from dotenv import load_dotenv

# Load environment variables from .env file FIRST, before any other imports
load_dotenv()

# Set SQLAlchemy engine logging to WARNING level to reduce query log noise
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
# Keep our application logs at INFO level
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

from config import settings
from database import Database

# Import API routers
from app.api.endpoints import (
    auth,
    clinic_settings,
    financial,
    integrations,
    lgpd,
    medical_records,
    patients,
    sessions,
)

from app.core.cache import cache_manager
from app.core.error_handling import register_exception_handlers
from app.core.feature_flags import FeatureFlags
from app.core.monitoring import init_sentry
from app.middleware.cache_headers import CacheHeadersMiddleware
from app.services.financial_sync import SyncMemo
from app.services.owner_backfill import run_backfill_owner_from_env

logger = logging.getLogger(__name__)


def create_app(database: Optional[Database] = None) -> FastAPI:
    """
    Build the application

    ``database`` is used as-is when given (tests); otherwise the lifespan
    opens one from DATABASE_URL and disposes it on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan event handler for startup and shutdown"""
        logger.info(f"{settings.APP_NAME} starting up...")

        if init_sentry():
            logger.info("Sentry monitoring initialized")

        owns_database = database is None
        db = database or Database(settings.DATABASE_URL)
        app.state.db = db
        app.state.sync_memo = SyncMemo()
        await db.create_all()

        await cache_manager.connect()

        if settings.JWT_SECRET == "change-me-in-production":
            logger.warning("JWT_SECRET not set. Create .env from .env.example")

        try:
            async with db.session_factory() as session:
                await run_backfill_owner_from_env(session)
        except Exception as e:
            logger.error(f"Owner backfill failed: {e}", exc_info=True)

        logger.info(f"Feature flags: {FeatureFlags.get_all_features_status()}")

        yield

        # Shutdown: Close connections
        await cache_manager.disconnect()
        if owns_database:
            await db.dispose()
        logger.info(f"{settings.APP_NAME} shutting down...")

    app = FastAPI(
        title=settings.APP_NAME,
        description="Clinic management API for psychology practices",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )
    if database is not None:
        app.state.db = database

    # Configure CORS FIRST so headers are present even on errors
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD"],
        allow_headers=["*"],
        expose_headers=["X-Financial-Sync", "Content-Disposition"],
        max_age=3600,  # Cache preflight requests for 1 hour
    )
    app.add_middleware(CacheHeadersMiddleware, api_prefix=settings.API_PREFIX)

    register_exception_handlers(app)

    # Include API routers
    for module in (auth, patients, sessions, medical_records, financial, clinic_settings, integrations, lgpd):
        app.include_router(module.router, prefix=settings.API_PREFIX)

    @app.get(f"{settings.API_PREFIX}/health")
    async def health_check():
        """Health check endpoint"""
        return {"ok": True}

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "name": settings.APP_NAME,
            "status": "ok",
            "docs": f"Use {settings.API_PREFIX}/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development,
    )
