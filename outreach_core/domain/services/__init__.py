"""Domain services for Outreach Ledger."""

from outreach_core.domain.services.accounts import AccountService
from outreach_core.domain.services.analytics import (
    AnalyticsEngine,
    AnalyticsScope,
    DateWindow,
    KpiSummary,
    derive_progression_status,
)
from outreach_core.domain.services.delivery import DeliveryFaultHandler, DeliveryResult
from outreach_core.domain.services.event_kinds import map_event_kind
from outreach_core.domain.services.event_log import EventLogService, ProgressCorrection
from outreach_core.domain.services.failures import (
    FailureArchiveService,
    NotificationService,
    classify_severity,
)
from outreach_core.domain.services.instance_tokens import parse_instance_token
from outreach_core.domain.services.resolver import EntityResolver, ResolvedWebhook

__all__ = [
    "AccountService",
    "AnalyticsEngine",
    "AnalyticsScope",
    "DateWindow",
    "DeliveryFaultHandler",
    "DeliveryResult",
    "EntityResolver",
    "EventLogService",
    "FailureArchiveService",
    "KpiSummary",
    "NotificationService",
    "ProgressCorrection",
    "ResolvedWebhook",
    "classify_severity",
    "derive_progression_status",
    "map_event_kind",
    "parse_instance_token",
]
