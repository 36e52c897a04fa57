"""Analytics schemas for responses."""

import datetime as dt
from typing import Optional

from pydantic import BaseModel


class KpiResponse(BaseModel):
    """KPI summary."""

    total_invites: int
    total_connections: int
    connection_rate: float
    total_replies: int
    response_rate: float

    class Config:
        from_attributes = True


class DailyActivityResponse(BaseModel):
    date: dt.date
    invites: int
    connections: int
    replies: int

    class Config:
        from_attributes = True


class TimelineResponse(BaseModel):
    scope: str
    scope_id: int
    timezone: str
    days: list[DailyActivityResponse]


class ContactProgressResponse(BaseModel):
    """A contact with its derived progression status."""

    contact_id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None
    job_title: Optional[str] = None
    email: Optional[str] = None
    profile_link: Optional[str] = None
    linked_to_contact_id: Optional[int] = None
    linked_to_campaign_id: Optional[int] = None
    status: str
    invited: bool
    connected: bool
    replied: bool
    invited_at: Optional[dt.datetime] = None
    connected_at: Optional[dt.datetime] = None
    replied_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class ContactProgressListResponse(BaseModel):
    campaign_id: int
    contacts: list[ContactProgressResponse]
    total: int


class CampaignSummaryResponse(BaseModel):
    campaign_id: int
    campaign_name: str
    instance_token: str
    started_at: Optional[dt.datetime] = None
    kpis: KpiResponse

    class Config:
        from_attributes = True


class AccountSummaryResponse(BaseModel):
    account_id: int
    display_name: str
    status: str
    campaigns_count: int
    kpis: KpiResponse

    class Config:
        from_attributes = True


class DashboardResponse(BaseModel):
    """Dashboard for a campaign, account or tenant."""

    scope: str
    scope_id: int
    name: str
    timezone: str
    kpis: KpiResponse
    timeline: list[DailyActivityResponse]
    earliest_activity: Optional[dt.date] = None
    campaigns: list[CampaignSummaryResponse] = []
    accounts: list[AccountSummaryResponse] = []
