"""Maintenance tasks for failure records."""

from datetime import datetime, timezone
from typing import Optional

from outreach_core.config import get_settings
from outreach_core.domain.errors import DeliveryFailed, NotFoundError
from outreach_core.domain.services.delivery import DeliveryFaultHandler
from outreach_core.domain.services.failures import FailureArchiveService, NotificationService
from outreach_core.infra.db import get_sync_session_factory, session_scope
from outreach_core.infrastructure.broadcast import get_broadcaster
from outreach_core.observability.logging import get_logger
from outreach_worker.celery_app import app

logger = get_logger(__name__)


def _now_utc() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


@app.task(name="maintenance.purge_failure_records", bind=True, max_retries=3)
def purge_failure_records(self, retention_days: Optional[int] = None) -> dict:
    """Delete archived failures and resolved notifications past retention.

    Args:
        retention_days: Days of history to keep. Defaults to the configured
            ``failure_retention_days``.

    Returns:
        Dict with status, deleted counts, and timestamps.
    """
    started_at = _now_utc()
    if retention_days is None:
        retention_days = get_settings().failure_retention_days

    try:
        with session_scope(get_sync_session_factory()) as session:
            archives_deleted = FailureArchiveService(session).purge_older_than(retention_days)
            notifications_deleted = NotificationService(session).purge_resolved_older_than(
                retention_days
            )

        completed_at = _now_utc()
        logger.info(
            "failure records purged",
            retention_days=retention_days,
            archives_deleted=archives_deleted,
            notifications_deleted=notifications_deleted,
        )

        return {
            "status": "success",
            "archives_deleted": archives_deleted,
            "notifications_deleted": notifications_deleted,
            "retention_days": retention_days,
            "started_at": started_at.isoformat(),
            "completed_at": completed_at.isoformat(),
            "duration_seconds": int((completed_at - started_at).total_seconds()),
        }

    except Exception as exc:
        completed_at = _now_utc()

        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))

        logger.error("failure record purge failed", exc_info=True, error=str(exc))
        return {
            "status": "failed",
            "error": str(exc),
            "retention_days": retention_days,
            "started_at": started_at.isoformat(),
            "completed_at": completed_at.isoformat(),
        }


@app.task(name="maintenance.replay_failed_webhook", bind=True)
def replay_failed_webhook(self, archive_id: int) -> dict:
    """Re-deliver an archived webhook payload.

    The delivery runs with its own attempt budget; a replay that fails again
    is archived as a new record rather than retried here.

    Args:
        archive_id: ID of the archived failure.

    Returns:
        Dict with status and the delivery's correlation id.
    """
    settings = get_settings()
    handler = DeliveryFaultHandler(
        get_sync_session_factory(),
        broadcaster=get_broadcaster(settings),
        settings=settings,
    )

    try:
        result = handler.replay_archived(archive_id)
    except NotFoundError as e:
        return {"status": "not_found", "archive_id": archive_id, "error": str(e)}
    except DeliveryFailed as e:
        return {
            "status": "failed",
            "archive_id": archive_id,
            "correlation_id": e.correlation_id,
            "severity": e.severity,
            "error": str(e.original),
        }

    return {
        "status": "success",
        "archive_id": archive_id,
        "correlation_id": result.correlation_id,
        "event_id": result.resolved.get("event_id"),
        "duplicate_reply": result.duplicate_reply,
    }
