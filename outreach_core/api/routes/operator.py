"""Operator tooling routes.

Archived failures, notifications, cleanup, live activity and manual
progression corrections. Guarded by ``X-Operator-Key`` when a key is
configured.
"""

from typing import Optional

from fastapi import APIRouter, Body, HTTPException, Query, status
from fastapi.responses import JSONResponse

from outreach_core.api.deps import (
    AppSettings,
    BroadcasterDep,
    DBSession,
    OperatorAccess,
    SessionFactory,
)
from outreach_core.api.errors import delivery_status_code, to_http_exception
from outreach_core.api.schemas.operator import (
    ActivityEntry,
    ActivityResponse,
    DeleteResponse,
    EventResponse,
    FailedWebhookListResponse,
    FailedWebhookResponse,
    FailureStats,
    NotificationCountResponse,
    NotificationListResponse,
    NotificationResponse,
    ProgressCorrectionRequest,
    ProgressCorrectionResponse,
    PurgeRequest,
    PurgeResponse,
    ReplayResponse,
    ResolveManyRequest,
    ResolveManyResponse,
    StatsResponse,
)
from outreach_core.api.schemas.webhooks import WebhookErrorResponse
from outreach_core.domain.errors import DeliveryFailed, NotFoundError
from outreach_core.domain.models import Campaign, Contact
from outreach_core.domain.services.analytics import derive_progression_status
from outreach_core.domain.services.delivery import DeliveryFaultHandler
from outreach_core.domain.services.event_log import EventLogService, ProgressCorrection
from outreach_core.domain.services.failures import FailureArchiveService, NotificationService

router = APIRouter(prefix="/operator", tags=["operator"], dependencies=[OperatorAccess])


# =============================================================================
# FAILED WEBHOOKS
# =============================================================================


@router.get("/failures", response_model=FailedWebhookListResponse)
def list_failures(
    db: DBSession,
    severity: Optional[str] = Query(None, description="Filter by severity"),
    routing_key: Optional[str] = Query(None, description="Filter by routing key"),
    unresolved_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """List archived webhook failures, newest first."""
    try:
        records = FailureArchiveService(db).list_records(
            severity=severity,
            routing_key=routing_key,
            unresolved_only=unresolved_only,
            limit=limit,
            offset=offset,
        )
    except ValueError as e:
        raise to_http_exception(e)

    return FailedWebhookListResponse(
        entries=[FailedWebhookResponse.model_validate(r) for r in records],
        limit=limit,
        offset=offset,
    )


@router.post("/failures/resolve", response_model=ResolveManyResponse)
def resolve_failures(request: ResolveManyRequest, db: DBSession):
    """Mark several archived failures resolved."""
    return ResolveManyResponse(resolved=FailureArchiveService(db).resolve_many(request.ids))


@router.post("/failures/{archive_id}/resolve", response_model=FailedWebhookResponse)
def resolve_failure(archive_id: int, db: DBSession):
    try:
        record = FailureArchiveService(db).resolve(archive_id)
    except NotFoundError as e:
        raise to_http_exception(e)
    return FailedWebhookResponse.model_validate(record)


@router.delete("/failures/{archive_id}", response_model=DeleteResponse)
def delete_failure(archive_id: int, db: DBSession):
    try:
        FailureArchiveService(db).delete(archive_id)
    except NotFoundError as e:
        raise to_http_exception(e)
    return DeleteResponse(id=archive_id)


@router.post(
    "/failures/{archive_id}/replay",
    response_model=ReplayResponse,
    responses={400: {"model": WebhookErrorResponse}, 500: {"model": WebhookErrorResponse}},
)
def replay_failure(
    archive_id: int,
    settings: AppSettings,
    session_factory: SessionFactory,
    broadcaster: BroadcasterDep,
):
    """Re-deliver an archived payload; the record is resolved on success."""
    handler = DeliveryFaultHandler(session_factory, broadcaster=broadcaster, settings=settings)
    try:
        result = handler.replay_archived(archive_id)
    except NotFoundError as e:
        raise to_http_exception(e)
    except DeliveryFailed as e:
        body = WebhookErrorResponse(
            error=str(e.original),
            correlation_id=e.correlation_id,
            severity=e.severity,
        )
        return JSONResponse(
            status_code=delivery_status_code(e.original),
            content=body.model_dump(),
        )

    return ReplayResponse(
        archive_id=archive_id,
        correlation_id=result.correlation_id,
        event_id=result.resolved.get("event_id"),
        event_kind=result.resolved.get("event_kind"),
        duplicate_reply=result.duplicate_reply,
    )


# =============================================================================
# NOTIFICATIONS
# =============================================================================


@router.get("/notifications", response_model=NotificationListResponse)
def list_notifications(
    db: DBSession,
    severity: Optional[str] = Query(None),
    include_resolved: bool = Query(False),
    correlation_id: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=200),
):
    """List notifications, unresolved only unless ``include_resolved``."""
    try:
        notifications = NotificationService(db).list_notifications(
            severity=severity,
            unresolved_only=not include_resolved,
            correlation_id=correlation_id,
            limit=limit,
        )
    except ValueError as e:
        raise to_http_exception(e)
    return NotificationListResponse(
        entries=[NotificationResponse.model_validate(n) for n in notifications]
    )


@router.get("/notifications/count", response_model=NotificationCountResponse)
def count_notifications(db: DBSession):
    return NotificationCountResponse(unresolved=NotificationService(db).unresolved_count())


@router.post("/notifications/resolve", response_model=ResolveManyResponse)
def resolve_notifications(request: ResolveManyRequest, db: DBSession):
    return ResolveManyResponse(resolved=NotificationService(db).resolve_many(request.ids))


@router.post("/notifications/{notification_id}/resolve", response_model=NotificationResponse)
def resolve_notification(notification_id: int, db: DBSession):
    try:
        notification = NotificationService(db).resolve(notification_id)
    except NotFoundError as e:
        raise to_http_exception(e)
    return NotificationResponse.model_validate(notification)


@router.delete("/notifications/{notification_id}", response_model=DeleteResponse)
def delete_notification(notification_id: int, db: DBSession):
    try:
        NotificationService(db).delete(notification_id)
    except NotFoundError as e:
        raise to_http_exception(e)
    return DeleteResponse(id=notification_id)


# =============================================================================
# MAINTENANCE AND MONITORING
# =============================================================================


@router.post("/purge", response_model=PurgeResponse)
def purge(
    db: DBSession,
    settings: AppSettings,
    request: Optional[PurgeRequest] = Body(None),
):
    """Delete archived failures and resolved notifications past retention."""
    days = settings.failure_retention_days
    if request is not None and request.days is not None:
        days = request.days

    return PurgeResponse(
        days=days,
        archives_deleted=FailureArchiveService(db).purge_older_than(days),
        notifications_deleted=NotificationService(db).purge_resolved_older_than(days),
    )


@router.get("/stats", response_model=StatsResponse)
def stats(db: DBSession):
    """Failure and notification counts."""
    return StatsResponse(
        archive=FailureStats(**FailureArchiveService(db).stats()),
        notifications=FailureStats(**NotificationService(db).stats()),
    )


@router.get("/activity", response_model=ActivityResponse)
def recent_activity(db: DBSession, limit: int = Query(20, ge=1, le=100)):
    """Newest events across all accounts."""
    entries = EventLogService(db).recent_activity(limit=limit)
    return ActivityResponse(entries=[ActivityEntry(**entry) for entry in entries])


# =============================================================================
# MANUAL CORRECTIONS
# =============================================================================


@router.put(
    "/campaigns/{campaign_id}/contacts/{contact_id}/events",
    response_model=ProgressCorrectionResponse,
)
def correct_contact_progress(
    campaign_id: int,
    contact_id: int,
    request: ProgressCorrectionRequest,
    db: DBSession,
):
    """Correct a contact's invite, connection and reply timestamps."""
    if db.get(Campaign, campaign_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Campaign {campaign_id} not found",
        )
    if db.get(Contact, (contact_id, campaign_id)) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Contact {contact_id} not found in campaign {campaign_id}",
        )

    def correction(stage) -> Optional[ProgressCorrection]:
        if stage is None:
            return None
        return ProgressCorrection(checked=stage.checked, at=stage.at)

    log = EventLogService(db)
    try:
        events = log.correct_contact_progress(
            campaign_id,
            contact_id,
            invited=correction(request.invited),
            connected=correction(request.connected),
            replied=correction(request.replied),
        )
    except ValueError as e:
        raise to_http_exception(e)

    return ProgressCorrectionResponse(
        campaign_id=campaign_id,
        contact_id=contact_id,
        status=derive_progression_status(log.list_for_contact(campaign_id, contact_id)).value,
        events=[EventResponse.model_validate(e) for e in events],
    )
