"""API schemas."""

from outreach_core.api.schemas.analytics import (
    ContactProgressListResponse,
    ContactProgressResponse,
    DashboardResponse,
    KpiResponse,
    TimelineResponse,
)
from outreach_core.api.schemas.operator import (
    FailedWebhookResponse,
    NotificationResponse,
    ProgressCorrectionRequest,
    StatsResponse,
)
from outreach_core.api.schemas.webhooks import (
    WebhookAcceptedResponse,
    WebhookErrorResponse,
    WebhookTestResponse,
)

__all__ = [
    # Analytics schemas
    "ContactProgressListResponse",
    "ContactProgressResponse",
    "DashboardResponse",
    "KpiResponse",
    "TimelineResponse",
    # Operator schemas
    "FailedWebhookResponse",
    "NotificationResponse",
    "ProgressCorrectionRequest",
    "StatsResponse",
    # Webhook schemas
    "WebhookAcceptedResponse",
    "WebhookErrorResponse",
    "WebhookTestResponse",
]
