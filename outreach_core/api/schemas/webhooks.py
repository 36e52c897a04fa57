"""Webhook ingestion schemas."""

from typing import Optional

from pydantic import BaseModel


class WebhookAcceptedResponse(BaseModel):
    """Response body for an ingested webhook."""

    success: bool = True
    correlation_id: str
    attempts: int
    account_id: int
    campaign_id: int
    campaign_name: str
    contact_id: int
    event_id: int
    event_kind: str
    duplicate_reply: bool = False


class WebhookErrorResponse(BaseModel):
    """Response body for a rejected or failed webhook."""

    success: bool = False
    error: str
    correlation_id: Optional[str] = None
    severity: Optional[str] = None


class WebhookTestResponse(BaseModel):
    """Response body for the routing key check."""

    success: bool = True
    routing_key: str
    account_id: int
    account_name: str
    status: str
