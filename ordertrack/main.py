"""
Order ledger service.

Print-shop orders with an append-only ledger, a rebuildable current-state
projection, and a delay-first control-tower listing.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import os

from shared.core import ServiceHealth, setup_logging, RequestLoggingMiddleware, get_logger
from ordertrack import __version__
from ordertrack.core_settings import get_settings
from ordertrack.api.envelope import install_error_handlers
from ordertrack.api.routes import router as orders_router
from ordertrack.api.master_data import (
    auth_router, customers_router, product_types_router, users_router, vendors_router,
)
from ordertrack.infrastructure import db
from ordertrack.infrastructure.migrations import run_migrations

SERVICE_NAME = "ordertrack"
SERVICE_VERSION = os.getenv("SERVICE_VERSION", __version__)
SERVICE_DESCRIPTION = "Order ledger and projection engine for a print shop"

settings = get_settings()

setup_logging(
    service_name=SERVICE_NAME,
    level=settings.LOG_LEVEL,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {SERVICE_NAME} version {SERVICE_VERSION}")

    if settings.RUN_MIGRATIONS_ON_STARTUP:
        try:
            run_migrations(db.engine)
        except Exception as e:
            logger.error(f"Migration error: {e}")
            raise

    logger.info(f"{SERVICE_NAME} started successfully")

    yield

    logger.info(f"Shutting down {SERVICE_NAME}")
    db.engine.dispose()


app = FastAPI(
    title=SERVICE_NAME,
    description=SERVICE_DESCRIPTION,
    version=SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

install_error_handlers(app)

health_service = ServiceHealth(
    SERVICE_NAME,
    SERVICE_VERSION,
    engine_factory=lambda: db.engine,
    required_settings={"JWT_SECRET": settings.JWT_SECRET, "DATABASE_URL": settings.database_url},
)
app.include_router(health_service.create_health_router())

app.include_router(auth_router)
app.include_router(orders_router)
app.include_router(customers_router)
app.include_router(vendors_router)
app.include_router(product_types_router)
app.include_router(users_router)


@app.get("/")
async def root():
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "status": "running",
        "docs": "/api/docs"
    }


@app.get("/info")
async def info():
    """Service information endpoint"""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "description": SERVICE_DESCRIPTION,
        "environment": os.getenv("ENVIRONMENT", "development"),
        "endpoints": {
            "health": "/health",
            "ready": "/health/ready",
            "live": "/health/live",
            "metrics": "/metrics",
            "orders": "/api/orders",
            "docs": "/api/docs"
        }
    }
