"""FastAPI application factory"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from tenancy_ledger.api.errors import register_exception_handlers
from tenancy_ledger.api.middleware import RequestIDMiddleware, MetricsMiddleware
from tenancy_ledger.api.v1 import clearance, houses, payments, tenants
from tenancy_ledger.infrastructure.database.models import Base
from tenancy_ledger.infrastructure.database.session import engine
from tenancy_ledger.infrastructure.observability.logging import setup_logging
from tenancy_ledger.services.removals import run_removal_sweeper, sweep_due_removals
from tenancy_ledger.config import settings

# Setup structured logging
setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, run removals that fell due while down, then keep sweeping"""
    Base.metadata.create_all(bind=engine)
    removed = await asyncio.to_thread(sweep_due_removals)
    logging.info("Removal timers restored", extra={"removed_on_startup": len(removed)})

    sweeper = asyncio.create_task(run_removal_sweeper(settings.removal_sweep_interval_seconds))
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Tenancy Ledger",
        description="Rent, utility and deposit reconciliation service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(houses.router, prefix="/v1", tags=["houses"])
    app.include_router(tenants.router, prefix="/v1", tags=["tenants"])
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(clearance.router, prefix="/v1", tags=["clearance"])

    return app


app = create_app()
