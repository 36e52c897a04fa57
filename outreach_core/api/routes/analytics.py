"""Analytics API routes.

Every endpoint accepts ``start_date`` / ``end_date`` (``YYYY-MM-DD``, local
calendar dates) and ``tz`` (IANA zone name) query parameters.
"""

from typing import Optional

from fastapi import APIRouter, Query

from outreach_core.api.deps import AppSettings, DBSession
from outreach_core.api.errors import to_http_exception
from outreach_core.api.schemas.analytics import (
    AccountSummaryResponse,
    CampaignSummaryResponse,
    ContactProgressListResponse,
    ContactProgressResponse,
    DailyActivityResponse,
    DashboardResponse,
    KpiResponse,
    TimelineResponse,
)
from outreach_core.config import Settings
from outreach_core.domain.errors import AnalyticsTimeout, NotFoundError
from outreach_core.domain.services.analytics import (
    AnalyticsEngine,
    AnalyticsScope,
    Dashboard,
    DateWindow,
)

router = APIRouter(prefix="/analytics", tags=["analytics"])

SCOPES = {
    "campaigns": AnalyticsScope.campaign,
    "accounts": AnalyticsScope.account,
    "tenants": AnalyticsScope.tenant,
}

StartDate = Query(None, description="First local date (YYYY-MM-DD)")
EndDate = Query(None, description="Last local date (YYYY-MM-DD)")
Timezone = Query(None, description="IANA timezone, defaults to the configured zone")


def _window(
    settings: Settings,
    start_date: Optional[str],
    end_date: Optional[str],
    tz: Optional[str],
) -> DateWindow:
    try:
        return DateWindow.from_strings(start_date, end_date, tz or settings.default_timezone)
    except ValueError as e:
        raise to_http_exception(e)


def _dashboard_response(dashboard: Dashboard, window: DateWindow) -> DashboardResponse:
    return DashboardResponse(
        scope=dashboard.scope.level,
        scope_id=dashboard.scope.id,
        name=dashboard.name,
        timezone=window.tz,
        kpis=KpiResponse.model_validate(dashboard.kpis),
        timeline=[DailyActivityResponse.model_validate(d) for d in dashboard.timeline],
        earliest_activity=dashboard.earliest_activity,
        campaigns=[CampaignSummaryResponse.model_validate(c) for c in dashboard.campaigns],
        accounts=[AccountSummaryResponse.model_validate(a) for a in dashboard.accounts],
    )


@router.get("/campaigns/{campaign_id}", response_model=DashboardResponse)
def campaign_dashboard(
    campaign_id: int,
    db: DBSession,
    settings: AppSettings,
    start_date: Optional[str] = StartDate,
    end_date: Optional[str] = EndDate,
    tz: Optional[str] = Timezone,
):
    """KPIs and daily activity of one campaign."""
    window = _window(settings, start_date, end_date, tz)
    try:
        dashboard = AnalyticsEngine(db, settings).campaign_dashboard(campaign_id, window)
    except (NotFoundError, AnalyticsTimeout) as e:
        raise to_http_exception(e)
    return _dashboard_response(dashboard, window)


@router.get("/accounts/{account_id}", response_model=DashboardResponse)
def account_dashboard(
    account_id: int,
    db: DBSession,
    settings: AppSettings,
    start_date: Optional[str] = StartDate,
    end_date: Optional[str] = EndDate,
    tz: Optional[str] = Timezone,
):
    """KPIs and daily activity of an account, with per-campaign summaries."""
    window = _window(settings, start_date, end_date, tz)
    try:
        dashboard = AnalyticsEngine(db, settings).account_dashboard(account_id, window)
    except (NotFoundError, AnalyticsTimeout) as e:
        raise to_http_exception(e)
    return _dashboard_response(dashboard, window)


@router.get("/tenants/{tenant_id}", response_model=DashboardResponse)
def tenant_dashboard(
    tenant_id: int,
    db: DBSession,
    settings: AppSettings,
    start_date: Optional[str] = StartDate,
    end_date: Optional[str] = EndDate,
    tz: Optional[str] = Timezone,
):
    """KPIs and daily activity of a tenant, with per-account summaries."""
    window = _window(settings, start_date, end_date, tz)
    try:
        dashboard = AnalyticsEngine(db, settings).tenant_dashboard(tenant_id, window)
    except (NotFoundError, AnalyticsTimeout) as e:
        raise to_http_exception(e)
    return _dashboard_response(dashboard, window)


@router.get("/{scope}/{scope_id}/kpis", response_model=KpiResponse)
def get_kpis(
    scope: str,
    scope_id: int,
    db: DBSession,
    settings: AppSettings,
    start_date: Optional[str] = StartDate,
    end_date: Optional[str] = EndDate,
    tz: Optional[str] = Timezone,
):
    """KPI summary for a campaign, account or tenant."""
    scope_factory = SCOPES.get(scope)
    if scope_factory is None:
        raise to_http_exception(NotFoundError(f"Unknown scope '{scope}'"))

    window = _window(settings, start_date, end_date, tz)
    try:
        kpis = AnalyticsEngine(db, settings).get_kpis(scope_factory(scope_id), window)
    except (NotFoundError, AnalyticsTimeout) as e:
        raise to_http_exception(e)
    return KpiResponse.model_validate(kpis)


@router.get("/{scope}/{scope_id}/timeline", response_model=TimelineResponse)
def get_timeline(
    scope: str,
    scope_id: int,
    db: DBSession,
    settings: AppSettings,
    start_date: Optional[str] = StartDate,
    end_date: Optional[str] = EndDate,
    tz: Optional[str] = Timezone,
):
    """Daily activity for a campaign, account or tenant."""
    scope_factory = SCOPES.get(scope)
    if scope_factory is None:
        raise to_http_exception(NotFoundError(f"Unknown scope '{scope}'"))

    window = _window(settings, start_date, end_date, tz)
    try:
        days = AnalyticsEngine(db, settings).get_time_series(scope_factory(scope_id), window)
    except (NotFoundError, AnalyticsTimeout) as e:
        raise to_http_exception(e)
    return TimelineResponse(
        scope=scope_factory(scope_id).level,
        scope_id=scope_id,
        timezone=window.tz,
        days=[DailyActivityResponse.model_validate(d) for d in days],
    )


@router.get("/campaigns/{campaign_id}/contacts", response_model=ContactProgressListResponse)
def get_campaign_contacts(campaign_id: int, db: DBSession, settings: AppSettings):
    """Contacts of a campaign with their progression status."""
    try:
        progress = AnalyticsEngine(db, settings).get_contact_progress(campaign_id)
    except (NotFoundError, AnalyticsTimeout) as e:
        raise to_http_exception(e)

    contacts = [
        ContactProgressResponse(
            contact_id=p.contact_id,
            first_name=p.first_name,
            last_name=p.last_name,
            company_name=p.company_name,
            job_title=p.job_title,
            email=p.email,
            profile_link=p.profile_link,
            linked_to_contact_id=p.linked_to_contact_id,
            linked_to_campaign_id=p.linked_to_campaign_id,
            status=p.status.value,
            invited=p.invited,
            connected=p.connected,
            replied=p.replied,
            invited_at=p.invited_at,
            connected_at=p.connected_at,
            replied_at=p.replied_at,
        )
        for p in progress
    ]
    return ContactProgressListResponse(
        campaign_id=campaign_id, contacts=contacts, total=len(contacts)
    )
