"""Fault-tolerant webhook delivery.

Wraps one resolver invocation with a bounded retry loop. Each attempt runs
in its own transaction, so a failed attempt leaves nothing behind. When the
attempt budget is exhausted the payload is archived, an operator
notification is raised, and the original error is re-raised to the caller
wrapped in ``DeliveryFailed`` so the sender sees a failure and can redeliver.

Usage:
    handler = DeliveryFaultHandler(get_sync_session_factory(), broadcaster)
    result = handler.deliver(payload, routing_key)
"""

import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session, sessionmaker

from outreach_core.config import Settings, get_settings
from outreach_core.domain.errors import DeliveryFailed, NotFoundError, ResolutionError
from outreach_core.domain.models import NotificationType
from outreach_core.domain.services.failures import (
    FailureArchiveService,
    NotificationService,
    classify_severity,
)
from outreach_core.domain.services.resolver import EntityResolver
from outreach_core.infra.db import session_scope
from outreach_core.infrastructure.broadcast import Broadcaster
from outreach_core.observability.logging import RequestContext, get_logger
from outreach_core.observability.metrics import (
    DELIVERY_DURATION_MS,
    WEBHOOK_ATTEMPTS,
    WEBHOOKS_DUPLICATE_REPLIES,
    WEBHOOKS_FAILED,
    WEBHOOKS_PROCESSED,
    WEBHOOKS_RECEIVED,
    get_collector,
)
from outreach_core.util.retry import RetryConfig, RetryExhausted, call_with_retry

logger = get_logger(__name__)


def delivery_retry_config(settings: Settings) -> RetryConfig:
    """Attempt budget and backoff for webhook deliveries."""
    return RetryConfig(
        max_attempts=settings.delivery_max_attempts,
        base_delay=settings.delivery_base_delay_seconds,
        max_delay=settings.delivery_max_delay_seconds,
        non_retryable_exceptions=(ResolutionError,),
    )


def extract_identifiers(payload: Any) -> tuple[Optional[int], Optional[str]]:
    """Best-effort contact id and instance token from a raw payload."""
    if not isinstance(payload, dict):
        return None, None

    contact_id = None
    contact = payload.get("contact")
    if isinstance(contact, dict):
        try:
            contact_id = int(contact.get("id"))
        except (TypeError, ValueError):
            contact_id = None

    instance_token = None
    messenger = payload.get("messenger")
    if isinstance(messenger, dict) and messenger.get("campaign_instance"):
        instance_token = str(messenger["campaign_instance"])[:255]

    return contact_id, instance_token


@dataclass
class DeliveryResult:
    """Outcome of a successful delivery."""

    correlation_id: str
    attempts: int
    resolved: dict

    @property
    def duplicate_reply(self) -> bool:
        return bool(self.resolved.get("duplicate_reply"))


class DeliveryFaultHandler:
    """Runs webhook resolution with retry, archival and escalation."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        broadcaster: Optional[Broadcaster] = None,
        retry_config: Optional[RetryConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        settings: Optional[Settings] = None,
    ):
        """Initialize the handler.

        Args:
            session_factory: Factory for the per-attempt and per-record sessions.
            broadcaster: Optional fan-out for processed events.
            retry_config: Attempt budget; defaults to the configured delivery budget.
            sleep: Blocking sleep used between attempts.
            settings: Application settings (defaults to the cached settings).
        """
        self.session_factory = session_factory
        self.broadcaster = broadcaster
        self.settings = settings or get_settings()
        self.retry_config = retry_config or delivery_retry_config(self.settings)
        self.sleep = sleep
        self.metrics = get_collector()

    def deliver(
        self,
        payload: Any,
        routing_key: str,
        correlation_id: Optional[str] = None,
    ) -> DeliveryResult:
        """Deliver one webhook.

        Args:
            payload: Decoded JSON body.
            routing_key: Routing key from the request path.
            correlation_id: Optional caller-supplied correlation ID.

        Returns:
            DeliveryResult with the resolution summary.

        Raises:
            DeliveryFailed: When the attempt budget is exhausted or a
                resolution error ends the delivery early.
        """
        correlation_id = correlation_id or str(uuid.uuid4())
        context = RequestContext(correlation_id=correlation_id, routing_key=routing_key)
        self.metrics.increment(WEBHOOKS_RECEIVED)

        def attempt(number: int) -> dict:
            context.attempt = number
            self.metrics.increment(WEBHOOK_ATTEMPTS)
            logger.debug("delivery attempt started", context=context)
            return self._attempt(payload, routing_key)

        def on_error(number: int, error: BaseException) -> None:
            logger.warning(
                "delivery attempt failed",
                context=RequestContext(
                    correlation_id=correlation_id,
                    routing_key=routing_key,
                    attempt=number,
                ),
                error=str(error),
                error_type=type(error).__name__,
            )

        try:
            with self.metrics.timed(DELIVERY_DURATION_MS):
                resolved, attempts = call_with_retry(
                    attempt, self.retry_config, sleep=self.sleep, on_error=on_error
                )
        except RetryExhausted as e:
            raise self._handle_final_failure(
                payload, routing_key, e.last_exception, e.attempts, correlation_id
            ) from e.last_exception

        self.metrics.increment(WEBHOOKS_PROCESSED)
        if resolved.get("duplicate_reply"):
            self.metrics.increment(WEBHOOKS_DUPLICATE_REPLIES)

        logger.info(
            "webhook delivered",
            context=RequestContext(
                correlation_id=correlation_id, routing_key=routing_key, attempt=attempts
            ),
            event_id=resolved.get("event_id"),
            event_kind=resolved.get("event_kind"),
        )
        return DeliveryResult(
            correlation_id=correlation_id, attempts=attempts, resolved=resolved
        )

    def _attempt(self, payload: Any, routing_key: str) -> dict:
        with session_scope(self.session_factory) as db:
            resolver = EntityResolver(db, settings=self.settings, broadcaster=self.broadcaster)
            result = resolver.resolve(payload, routing_key)
            summary = result.to_dict()
            message = resolver.announcement(result)

        resolver.publish(message)
        return summary

    def _handle_final_failure(
        self,
        payload: Any,
        routing_key: str,
        error: BaseException,
        attempts: int,
        correlation_id: str,
    ) -> DeliveryFailed:
        """Archive the payload and notify operators; returns the error to raise."""
        error_text = str(error) or type(error).__name__
        severity = classify_severity(error_text)
        contact_id, instance_token = extract_identifiers(payload)
        context = RequestContext(
            correlation_id=correlation_id, routing_key=routing_key, attempt=attempts
        )
        self.metrics.increment(WEBHOOKS_FAILED, labels={"severity": severity})

        logger.error(
            "webhook delivery failed",
            context=context,
            error=error_text,
            error_type=type(error).__name__,
            severity=severity,
        )

        archive_id = None
        try:
            with session_scope(self.session_factory) as db:
                record = FailureArchiveService(
                    db, max_payload_bytes=self.settings.webhook_max_payload_bytes
                ).create(
                    routing_key=routing_key,
                    raw_payload=payload,
                    error_message=error_text,
                    retry_count=attempts,
                    correlation_id=correlation_id,
                    severity=severity,
                    contact_id=contact_id,
                    instance_token=instance_token,
                )
                archive_id = record.id
        except Exception as archive_error:
            logger.error(
                "failed to archive webhook",
                context=context,
                exc_info=True,
                error=str(archive_error),
            )

        notification_id = None
        try:
            with session_scope(self.session_factory) as db:
                notification = NotificationService(db).create(
                    message=(
                        f"Webhook for routing key {routing_key} failed after "
                        f"{attempts} attempt(s): {error_text}"
                    ),
                    notification_type=NotificationType.WEBHOOK_FAILED,
                    severity=severity,
                    routing_key=routing_key,
                    correlation_id=correlation_id,
                )
                notification_id = notification.id
        except Exception as notify_error:
            logger.error(
                "failed to create notification",
                context=context,
                exc_info=True,
                error=str(notify_error),
            )

        return DeliveryFailed(
            error,
            attempts=attempts,
            correlation_id=correlation_id,
            severity=severity,
            archive_id=archive_id,
            notification_id=notification_id,
        )

    def replay_archived(self, archive_id: int) -> DeliveryResult:
        """Re-deliver an archived payload and mark it resolved on success.

        Raises:
            NotFoundError: If the archive record does not exist.
            DeliveryFailed: If the replay fails; a new archive record is written.
        """
        with session_scope(self.session_factory) as db:
            record = FailureArchiveService(db).get(archive_id)
            payload = record.raw_payload
            routing_key = record.routing_key

        result = self.deliver(payload, routing_key)

        with session_scope(self.session_factory) as db:
            try:
                FailureArchiveService(db).resolve(archive_id)
            except NotFoundError:
                logger.warning(
                    "replayed archive record disappeared", archive_id=archive_id
                )

        logger.info(
            "archived webhook replayed",
            archive_id=archive_id,
            correlation_id=result.correlation_id,
        )
        return result
