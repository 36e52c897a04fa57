"""Metrics API routes for observability."""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter

from outreach_core.api.deps import OperatorAccess
from outreach_core.observability.metrics import get_collector

router = APIRouter(prefix="/api", tags=["metrics"])


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Health check endpoint (public).

    Returns basic health status of the service.
    """
    return {
        "status": "healthy",
        "service": "outreach-ledger",
        "version": "0.1.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/metrics", dependencies=[OperatorAccess])
async def get_metrics() -> dict[str, Any]:
    """Get all in-process metrics.

    Returns webhook counters (received, processed, failed by severity,
    attempts) and latency histograms for deliveries and analytics queries.
    """
    collector = get_collector()

    return {
        "collected_at": datetime.now(timezone.utc).isoformat(),
        "application": collector.get_all(),
    }
