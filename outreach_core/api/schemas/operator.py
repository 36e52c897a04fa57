"""Operator tooling schemas for request/response validation."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class FailedWebhookResponse(BaseModel):
    """Response body for an archived webhook failure."""

    id: int
    routing_key: str
    raw_payload: dict[str, Any]
    error_message: str
    retry_count: int
    contact_id: Optional[int] = None
    instance_token: Optional[str] = None
    correlation_id: Optional[str] = None
    severity: str
    resolved: bool
    failed_at: datetime

    class Config:
        from_attributes = True


class FailedWebhookListResponse(BaseModel):
    entries: list[FailedWebhookResponse]
    limit: int
    offset: int


class NotificationResponse(BaseModel):
    """Response body for an operator notification."""

    id: int
    notification_type: str
    message: str
    routing_key: Optional[str] = None
    correlation_id: Optional[str] = None
    severity: str
    resolved: bool
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    entries: list[NotificationResponse]


class NotificationCountResponse(BaseModel):
    unresolved: int


class ResolveManyRequest(BaseModel):
    ids: list[int] = Field(..., min_length=1)


class ResolveManyResponse(BaseModel):
    resolved: int


class DeleteResponse(BaseModel):
    deleted: bool = True
    id: int


class PurgeRequest(BaseModel):
    days: Optional[int] = Field(None, ge=0, description="Defaults to the configured retention")


class PurgeResponse(BaseModel):
    days: int
    archives_deleted: int
    notifications_deleted: int


class ReplayResponse(BaseModel):
    archive_id: int
    correlation_id: str
    event_id: Optional[int] = None
    event_kind: Optional[str] = None
    duplicate_reply: bool = False


class FailureStats(BaseModel):
    total: int
    last_24h: int
    last_7d: int
    unresolved: int
    by_severity: dict[str, int]


class StatsResponse(BaseModel):
    archive: FailureStats
    notifications: FailureStats


class ActivityEntry(BaseModel):
    event_id: int
    event_kind: str
    campaign_id: int
    campaign_name: str
    account_name: str
    contact_id: int
    created_at: datetime


class ActivityResponse(BaseModel):
    entries: list[ActivityEntry]


class StageCorrection(BaseModel):
    checked: bool
    at: Optional[datetime] = None


class ProgressCorrectionRequest(BaseModel):
    """Manual correction of a contact's progression timestamps."""

    invited: Optional[StageCorrection] = None
    connected: Optional[StageCorrection] = None
    replied: Optional[StageCorrection] = None


class EventResponse(BaseModel):
    id: int
    campaign_id: int
    contact_id: int
    event_kind: str
    invited_at: Optional[datetime] = None
    connected_at: Optional[datetime] = None
    replied_at: Optional[datetime] = None
    conversation_status: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ProgressCorrectionResponse(BaseModel):
    campaign_id: int
    contact_id: int
    status: str
    events: list[EventResponse]
