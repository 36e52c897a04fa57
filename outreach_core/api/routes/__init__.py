"""API routes."""

from outreach_core.api.routes import analytics, metrics, operator, webhooks

__all__ = ["analytics", "metrics", "operator", "webhooks"]
