"""Webhook ingestion routes.

The automation tool posts each event to the account's own URL; the routing
key in the path is the only thing that identifies the account. A non-2xx
response tells the sender to redeliver later.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Body, HTTPException, status
from fastapi.responses import JSONResponse

from outreach_core.api.deps import AppSettings, BroadcasterDep, DBSession, SessionFactory
from outreach_core.api.errors import delivery_status_code
from outreach_core.api.schemas.webhooks import (
    WebhookAcceptedResponse,
    WebhookErrorResponse,
    WebhookTestResponse,
)
from outreach_core.domain.errors import DeliveryFailed
from outreach_core.domain.services.accounts import AccountService
from outreach_core.domain.services.delivery import DeliveryFaultHandler
from outreach_core.domain.services.resolver import payload_size
from outreach_core.infrastructure.broadcast import RAW_WEBHOOK
from outreach_core.observability.logging import get_logger
from outreach_core.util.dates import utcnow

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/account/{routing_key}",
    response_model=WebhookAcceptedResponse,
    responses={
        400: {"model": WebhookErrorResponse},
        404: {"model": WebhookErrorResponse},
        413: {"model": WebhookErrorResponse},
        500: {"model": WebhookErrorResponse},
    },
)
def receive_webhook(
    routing_key: str,
    payload: Annotated[Any, Body()],
    settings: AppSettings,
    session_factory: SessionFactory,
    broadcaster: BroadcasterDep,
):
    """Ingest one webhook for the account owning ``routing_key``.

    Runs in the threadpool; backoff between attempts blocks only this
    request.
    """
    size = payload_size(payload)
    # Bodies over the ceiling are announced by size only
    within_limit = size <= settings.webhook_max_payload_bytes
    try:
        broadcaster.publish(
            settings.broadcast_channel,
            {
                "type": RAW_WEBHOOK,
                "routing_key": routing_key,
                "payload": payload if within_limit else None,
                "payload_size": size,
                "truncated": not within_limit,
                "timestamp": utcnow().isoformat(),
            },
        )
    except Exception:
        logger.warning("raw webhook broadcast failed", exc_info=True, routing_key=routing_key)

    handler = DeliveryFaultHandler(session_factory, broadcaster=broadcaster, settings=settings)
    try:
        result = handler.deliver(payload, routing_key)
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

    return WebhookAcceptedResponse(
        correlation_id=result.correlation_id,
        attempts=result.attempts,
        **result.resolved,
    )


@router.get("/account/{routing_key}/test", response_model=WebhookTestResponse)
def test_webhook(routing_key: str, db: DBSession):
    """Check that a routing key belongs to a provisioned account."""
    account = AccountService(db).get_by_routing_key(routing_key)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Account with routing key {routing_key} not found",
        )
    return WebhookTestResponse(
        routing_key=routing_key,
        account_id=account.id,
        account_name=account.display_name,
        status=account.status,
    )
