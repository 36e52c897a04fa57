"""Failure archive and operator notifications.

When a webhook delivery exhausts its attempt budget the original payload is
archived and an operator notification is raised. Both records are
immutable apart from their ``resolved`` flag and age-based cleanup.
"""

from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session as DBSession

from outreach_core.domain.errors import NotFoundError, PayloadTooLarge
from outreach_core.domain.models import (
    ErrorNotification,
    FailedWebhookArchive,
    NotificationType,
    Severity,
)
from outreach_core.domain.services.resolver import payload_size
from outreach_core.util.dates import utcnow

VALID_SEVERITIES = {Severity.CRITICAL, Severity.ERROR, Severity.WARNING}
VALID_NOTIFICATION_TYPES = {NotificationType.WEBHOOK_FAILED, NotificationType.SYSTEM_ERROR}

ARCHIVE_MAX_PAYLOAD_BYTES = 50_000

CRITICAL_MARKERS = ("storage", "database", "connection", "timeout", "timed out", "operational")
WARNING_MARKERS = ("invalid", "missing", "not found")


def classify_severity(error_text: Optional[str]) -> str:
    """Classify a failure by its error text.

    Storage, connectivity and timeout failures are critical; data problems
    (invalid, missing, not found) are warnings; anything else is an error.
    """
    message = (error_text or "").lower()
    if any(marker in message for marker in CRITICAL_MARKERS):
        return Severity.CRITICAL
    if any(marker in message for marker in WARNING_MARKERS):
        return Severity.WARNING
    return Severity.ERROR


def _validate_severity(severity: str) -> None:
    if severity not in VALID_SEVERITIES:
        raise ValueError(
            f"severity must be one of {sorted(VALID_SEVERITIES)}, got '{severity}'"
        )


def _severity_counts(db: DBSession, model, since_column) -> dict[str, int]:
    now = utcnow()
    row = db.query(
        func.count(model.id),
        func.sum(case((since_column >= now - timedelta(hours=24), 1), else_=0)),
        func.sum(case((since_column >= now - timedelta(days=7), 1), else_=0)),
        func.sum(case((model.severity == Severity.CRITICAL, 1), else_=0)),
        func.sum(case((model.severity == Severity.ERROR, 1), else_=0)),
        func.sum(case((model.severity == Severity.WARNING, 1), else_=0)),
        func.sum(case((model.resolved.is_(False), 1), else_=0)),
    ).one()
    total, last_24h, last_7d, critical, error, warning, unresolved = row
    return {
        "total": total or 0,
        "last_24h": int(last_24h or 0),
        "last_7d": int(last_7d or 0),
        "unresolved": int(unresolved or 0),
        "by_severity": {
            Severity.CRITICAL: int(critical or 0),
            Severity.ERROR: int(error or 0),
            Severity.WARNING: int(warning or 0),
        },
    }


class FailureArchiveService:
    """Service for archived webhook failures."""

    def __init__(self, db: DBSession, max_payload_bytes: int = ARCHIVE_MAX_PAYLOAD_BYTES):
        self.db = db
        self.max_payload_bytes = max_payload_bytes

    def create(
        self,
        routing_key: str,
        raw_payload: Any,
        error_message: str,
        retry_count: int,
        correlation_id: Optional[str] = None,
        severity: str = Severity.ERROR,
        contact_id: Optional[int] = None,
        instance_token: Optional[str] = None,
    ) -> FailedWebhookArchive:
        """Archive a failed webhook.

        Args:
            routing_key: Routing key the webhook was sent to.
            raw_payload: Full original payload.
            error_message: Text of the final error.
            retry_count: Number of attempts made.
            correlation_id: Correlation ID shared with the notification.
            severity: Failure severity.
            contact_id: Best-effort contact id from the payload.
            instance_token: Best-effort instance token from the payload.

        Returns:
            The created archive record.

        Raises:
            PayloadTooLarge: If the payload exceeds the archive ceiling.
            ValueError: If the severity is invalid.
        """
        _validate_severity(severity)
        size = payload_size(raw_payload)
        if size > self.max_payload_bytes:
            raise PayloadTooLarge(size, self.max_payload_bytes)

        record = FailedWebhookArchive(
            routing_key=routing_key,
            raw_payload=raw_payload,
            error_message=error_message,
            retry_count=retry_count,
            correlation_id=correlation_id,
            severity=severity,
            contact_id=contact_id,
            instance_token=instance_token,
            failed_at=utcnow(),
        )
        self.db.add(record)
        self.db.flush()
        return record

    def get(self, archive_id: int) -> FailedWebhookArchive:
        record = self.db.get(FailedWebhookArchive, archive_id)
        if record is None:
            raise NotFoundError(f"Failed webhook {archive_id} not found")
        return record

    def list_records(
        self,
        severity: Optional[str] = None,
        routing_key: Optional[str] = None,
        unresolved_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[FailedWebhookArchive]:
        """List archived failures, newest first."""
        query = self.db.query(FailedWebhookArchive)
        if severity:
            _validate_severity(severity)
            query = query.filter(FailedWebhookArchive.severity == severity)
        if routing_key:
            query = query.filter(FailedWebhookArchive.routing_key == routing_key)
        if unresolved_only:
            query = query.filter(FailedWebhookArchive.resolved.is_(False))
        return (
            query.order_by(FailedWebhookArchive.failed_at.desc(), FailedWebhookArchive.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def resolve(self, archive_id: int) -> FailedWebhookArchive:
        record = self.get(archive_id)
        record.resolved = True
        self.db.flush()
        return record

    def resolve_many(self, archive_ids: list[int]) -> int:
        """Mark several records resolved.

        Returns:
            Number of records updated.
        """
        if not archive_ids:
            return 0
        updated = (
            self.db.query(FailedWebhookArchive)
            .filter(
                FailedWebhookArchive.id.in_(archive_ids),
                FailedWebhookArchive.resolved.is_(False),
            )
            .update({FailedWebhookArchive.resolved: True}, synchronize_session="fetch")
        )
        self.db.flush()
        return updated

    def delete(self, archive_id: int) -> None:
        record = self.get(archive_id)
        self.db.delete(record)
        self.db.flush()

    def purge_older_than(self, days: int) -> int:
        """Delete records that failed more than ``days`` days ago."""
        if days < 0:
            raise ValueError("days must not be negative")
        cutoff = utcnow() - timedelta(days=days)
        deleted = (
            self.db.query(FailedWebhookArchive)
            .filter(FailedWebhookArchive.failed_at < cutoff)
            .delete(synchronize_session="fetch")
        )
        self.db.flush()
        return deleted

    def stats(self) -> dict[str, Any]:
        return _severity_counts(self.db, FailedWebhookArchive, FailedWebhookArchive.failed_at)


class NotificationService:
    """Service for operator error notifications."""

    def __init__(self, db: DBSession):
        self.db = db

    def create(
        self,
        message: str,
        notification_type: str = NotificationType.WEBHOOK_FAILED,
        severity: str = Severity.ERROR,
        routing_key: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> ErrorNotification:
        """Raise a notification.

        Raises:
            ValueError: If the type or severity is invalid.
        """
        if notification_type not in VALID_NOTIFICATION_TYPES:
            raise ValueError(
                f"notification_type must be one of {sorted(VALID_NOTIFICATION_TYPES)}, "
                f"got '{notification_type}'"
            )
        _validate_severity(severity)

        notification = ErrorNotification(
            notification_type=notification_type,
            message=message,
            severity=severity,
            routing_key=routing_key,
            correlation_id=correlation_id,
            created_at=utcnow(),
        )
        self.db.add(notification)
        self.db.flush()
        return notification

    def get(self, notification_id: int) -> ErrorNotification:
        notification = self.db.get(ErrorNotification, notification_id)
        if notification is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        return notification

    def list_notifications(
        self,
        severity: Optional[str] = None,
        unresolved_only: bool = True,
        correlation_id: Optional[str] = None,
        limit: int = 20,
    ) -> list[ErrorNotification]:
        """List notifications, newest first."""
        query = self.db.query(ErrorNotification)
        if severity:
            _validate_severity(severity)
            query = query.filter(ErrorNotification.severity == severity)
        if unresolved_only:
            query = query.filter(ErrorNotification.resolved.is_(False))
        if correlation_id:
            query = query.filter(ErrorNotification.correlation_id == correlation_id)
        return (
            query.order_by(ErrorNotification.created_at.desc(), ErrorNotification.id.desc())
            .limit(limit)
            .all()
        )

    def unresolved_count(self) -> int:
        return (
            self.db.query(func.count(ErrorNotification.id))
            .filter(ErrorNotification.resolved.is_(False))
            .scalar()
            or 0
        )

    def resolve(self, notification_id: int) -> ErrorNotification:
        notification = self.get(notification_id)
        notification.resolved = True
        self.db.flush()
        return notification

    def resolve_many(self, notification_ids: list[int]) -> int:
        if not notification_ids:
            return 0
        updated = (
            self.db.query(ErrorNotification)
            .filter(
                ErrorNotification.id.in_(notification_ids),
                ErrorNotification.resolved.is_(False),
            )
            .update({ErrorNotification.resolved: True}, synchronize_session="fetch")
        )
        self.db.flush()
        return updated

    def delete(self, notification_id: int) -> None:
        notification = self.get(notification_id)
        self.db.delete(notification)
        self.db.flush()

    def purge_resolved_older_than(self, days: int) -> int:
        """Delete resolved notifications older than ``days`` days."""
        if days < 0:
            raise ValueError("days must not be negative")
        cutoff = utcnow() - timedelta(days=days)
        deleted = (
            self.db.query(ErrorNotification)
            .filter(
                ErrorNotification.resolved.is_(True),
                ErrorNotification.created_at < cutoff,
            )
            .delete(synchronize_session="fetch")
        )
        self.db.flush()
        return deleted

    def stats(self) -> dict[str, Any]:
        return _severity_counts(self.db, ErrorNotification, ErrorNotification.created_at)
