"""
Inventory Ledger Service
Stock ledger with cart reservations, automatic restocking and fault injection
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional
import subprocess
import os

from inventory_ledger.core import ServiceHealth, setup_logging, RequestLoggingMiddleware, get_logger
from inventory_ledger.core_settings import Settings, get_settings
from inventory_ledger.bootstrap import ServiceContainer, build_container
from inventory_ledger.infrastructure.db import init_models
from inventory_ledger.api.routes import router as inventory_router
from inventory_ledger.api.chaos_routes import router as chaos_router
from inventory_ledger.api.errors import register_exception_handlers

SERVICE_DESCRIPTION = "Inventory ledger microservice"
PROJECT_ROOT = Path(__file__).resolve().parent.parent

logger = get_logger(__name__)

def run_migrations(settings: Settings) -> None:
    logger.info("Running database migrations")
    try:
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            cwd=PROJECT_ROOT,
            env={**os.environ, "DATABASE_URL": settings.database_url},
            capture_output=True,
            text=True,
            check=False
        )
    except OSError as e:
        logger.error(f"Migration error: {e}")
        return
    if result.returncode != 0:
        logger.warning(f"Migration output: {result.stderr}")
    else:
        logger.info("Database migrations completed")

def create_app(settings: Optional[Settings] = None, container: Optional[ServiceContainer] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifecycle management"""
        setup_logging(
            service_name=settings.SERVICE_NAME,
            level=settings.LOG_LEVEL,
            version=settings.SERVICE_VERSION,
            enable_file=bool(settings.LOG_FILE),
            log_file=settings.LOG_FILE,
        )
        logger.info(f"Starting {settings.SERVICE_NAME} version {settings.SERVICE_VERSION}")

        # Startup
        if container is None:
            if settings.RUN_MIGRATIONS:
                run_migrations(settings)
            app.state.container = build_container(settings)
        else:
            app.state.container = container
        c: ServiceContainer = app.state.container

        if c.engine is not None:
            try:
                init_models(c.engine)
                logger.info("Database models initialized")
            except Exception as e:
                logger.error(f"Failed to initialize database models: {e}")
                raise

        if c.scheduler.policy.enabled:
            c.scheduler.start()

        logger.info(f"{settings.SERVICE_NAME} started successfully")

        yield

        # Shutdown
        logger.info(f"Shutting down {settings.SERVICE_NAME}")
        c.scheduler.stop()
        freed = c.harness.cleanup()
        if freed:
            logger.info(f"Released {freed} memory pressure block(s)")
        if c.engine is not None:
            c.engine.dispose()

    app = FastAPI(
        title=settings.SERVICE_NAME,
        description=SERVICE_DESCRIPTION,
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(app)

    # Initialize health checks
    health_service = ServiceHealth(settings.SERVICE_NAME, settings.SERVICE_VERSION)
    app.include_router(health_service.create_health_router())

    app.include_router(inventory_router)
    app.include_router(chaos_router)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "status": "running",
            "docs": "/api/docs"
        }

    @app.get("/info")
    async def info():
        """Service information endpoint"""
        return {
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "description": SERVICE_DESCRIPTION,
            "environment": os.getenv("ENVIRONMENT", "development"),
            "endpoints": {
                "health": "/health",
                "ready": "/health/ready",
                "live": "/health/live",
                "metrics": "/metrics",
                "inventory": "/api/v1/inventory",
                "chaos": "/api/v1/chaos",
                "docs": "/api/docs"
            }
        }

    return app

app = create_app()
