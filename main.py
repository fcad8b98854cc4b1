"""
Colocacion - Warehouse product placement service
FastAPI Application Entry Point
"""
import uvicorn
from fastapi import FastAPI
from contextlib import asynccontextmanager
import logging

from app.core import settings, engine, Base, SessionLocal
from app.core.logging_config import setup_logging
from app.api.router import api_router
from app.jobs import MaintenanceScheduler, PrintWorker, SpoolPrinter
from app.services import ServiceContainer

logger = logging.getLogger(__name__)


# Lifespan for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(logging.DEBUG if settings.DEBUG else logging.INFO)

    # Startup: Create tables if not exist
    Base.metadata.create_all(bind=engine)
    logger.info(f"{settings.APP_NAME} starting on port {settings.APP_PORT}")

    services = ServiceContainer(settings, SessionLocal)
    app.state.services = services

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        try:
            scheduler = MaintenanceScheduler(services)
            scheduler.start()
        except Exception as e:
            logger.warning(f"Could not start scheduler: {e}")
            scheduler = None

    worker = None
    if settings.PRINT_WORKER_ENABLED:
        worker = PrintWorker(
            services.print_queue,
            services.labels,
            SpoolPrinter(settings.PRINT_SPOOL_PATH),
            idle_seconds=settings.PRINT_WORKER_IDLE_SECONDS,
        )
        worker.start()

    yield

    # Shutdown
    if worker:
        await worker.stop()
    if scheduler:
        scheduler.stop()
    await services.close()
    logger.info(f"{settings.APP_NAME} shutting down")

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Product placement, ERP sync and shelf label printing for handheld devices",
    version="1.0.0",
    lifespan=lifespan
)

# Include routers
app.include_router(api_router, prefix="/api")


# Health check
@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.APP_NAME}

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.APP_PORT,
        reload=settings.DEBUG
    )
