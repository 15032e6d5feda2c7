"""
FastAPI application entry point.
Initializes the FastAPI app, configures logging, and includes the sync routes.
"""

import structlog
from fastapi import FastAPI

from possync.config import settings
from possync.db.session import dispose_engine, init_models
from possync.routers import sync
from possync.utils.logger import configure_logging

# Configure logging first
configure_logging()
logger = structlog.get_logger()

app = FastAPI(
    title="POS Sync",
    description="Multi-tenant Clover sync engine for the POS backend",
    version="1.0.0",
)

app.include_router(sync.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event."""
    await init_models()
    logger.info(
        "POS sync service started",
        environment=settings.app_environment,
        clover_environment=settings.clover_environment,
        clover_sync_enabled=settings.clover_sync_enabled,
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event."""
    await dispose_engine()
    logger.info("POS sync service shutting down")


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "clover_sync_enabled": settings.clover_sync_enabled,
    }


@app.get("/healthz")
async def healthz():
    """Alternative health check endpoint (Kubernetes-style)."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("possync.main:app", host="0.0.0.0", port=8000, reload=True)
