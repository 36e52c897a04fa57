"""Outreach Ledger API - Main Application."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from outreach_core.api.routes import analytics as analytics_routes
from outreach_core.api.routes import metrics as metrics_routes
from outreach_core.api.routes import operator as operator_routes
from outreach_core.api.routes import webhooks as webhooks_routes
from outreach_core.config import get_settings
from outreach_core.observability.logging import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    app.state.settings = settings
    yield
    # Shutdown


app = FastAPI(
    title="Outreach Ledger API",
    description="Outreach webhook ingestion and campaign analytics",
    version="0.1.0",
    lifespan=lifespan,
)

# Include API routers
app.include_router(analytics_routes.router)
app.include_router(metrics_routes.router)
app.include_router(operator_routes.router)
app.include_router(webhooks_routes.router)


@app.get("/healthz")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"ok": True, "service": "outreach-ledger"}


@app.get("/")
async def root() -> dict:
    """Root endpoint."""
    return {
        "name": "Outreach Ledger API",
        "version": "0.1.0",
        "status": "running",
    }
