"""Analytics over the event log.

Every figure is derived on demand from the append-only event log; nothing
here is stored. Counting rules:

- invites and connections count distinct (campaign, contact) pairs whose
  invite / connection timestamp falls in the window, so repeated
  deliveries never inflate them
- replies count contacts whose first reply falls in the window
- rates are percentages rounded half-up to one decimal, 0 when the
  denominator is 0

Date windows are local calendar dates in the caller's timezone; the start
bound is the local day start and the end bound the last instant of the end
day, both converted to naive UTC for comparison with stored timestamps.

Usage:
    engine = AnalyticsEngine(db)
    window = DateWindow(date(2025, 10, 1), date(2025, 10, 31), "Europe/London")
    kpis = engine.get_kpis(AnalyticsScope.account(account.id), window)
"""

import math
import time
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session as DBSession

from outreach_core.config import Settings, get_settings
from outreach_core.domain.errors import AnalyticsTimeout, NotFoundError
from outreach_core.domain.models import (
    REPLIED_CONVERSATION_STATUS,
    Account,
    Campaign,
    Contact,
    Event,
    ProgressionStatus,
    Tenant,
)
from outreach_core.observability.metrics import ANALYTICS_QUERY_MS, get_collector
from outreach_core.util.dates import (
    day_end_utc,
    day_start_utc,
    iter_days,
    local_date,
    parse_date,
    resolve_timezone,
)

METRIC_COLUMNS = {
    "invites": Event.invited_at,
    "connections": Event.connected_at,
    "replies": Event.replied_at,
}


# =============================================================================
# VALUE TYPES
# =============================================================================


@dataclass(frozen=True)
class AnalyticsScope:
    """The slice of the hierarchy a query covers."""

    level: str
    id: int

    CAMPAIGN = "campaign"
    ACCOUNT = "account"
    TENANT = "tenant"

    @classmethod
    def campaign(cls, campaign_id: int) -> "AnalyticsScope":
        return cls(cls.CAMPAIGN, campaign_id)

    @classmethod
    def account(cls, account_id: int) -> "AnalyticsScope":
        return cls(cls.ACCOUNT, account_id)

    @classmethod
    def tenant(cls, tenant_id: int) -> "AnalyticsScope":
        """Tenant scope; covers the accounts currently assigned to the tenant."""
        return cls(cls.TENANT, tenant_id)


@dataclass(frozen=True)
class DateWindow:
    """Inclusive local calendar date range; either bound may be open."""

    start: Optional[date] = None
    end: Optional[date] = None
    tz: str = "UTC"

    def __post_init__(self):
        resolve_timezone(self.tz)
        if self.start and self.end and self.start > self.end:
            raise ValueError("start_date must not be after end_date")

    @classmethod
    def from_strings(
        cls,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        tz: Optional[str] = None,
    ) -> "DateWindow":
        """Build a window from ``YYYY-MM-DD`` strings.

        Raises:
            ValueError: If a date or the timezone is invalid.
        """
        return cls(parse_date(start_date), parse_date(end_date), tz or "UTC")

    @property
    def zone(self):
        return resolve_timezone(self.tz)

    @property
    def is_bounded(self) -> bool:
        return self.start is not None and self.end is not None

    def bounds(self) -> tuple[Optional[datetime], Optional[datetime]]:
        """Naive UTC (start, end) instants of the window."""
        zone = self.zone
        start = day_start_utc(self.start, zone) if self.start else None
        end = day_end_utc(self.end, zone) if self.end else None
        return start, end


def round_rate(value: float) -> float:
    """Round a percentage half-up to one decimal."""
    return math.floor(value * 10 + 0.5) / 10


@dataclass
class KpiSummary:
    total_invites: int = 0
    total_connections: int = 0
    connection_rate: float = 0.0
    total_replies: int = 0
    response_rate: float = 0.0

    @classmethod
    def from_counts(cls, invites: int, connections: int, replies: int) -> "KpiSummary":
        connection_rate = connections / invites * 100 if invites > 0 else 0
        response_rate = replies / connections * 100 if connections > 0 else 0
        return cls(
            total_invites=invites,
            total_connections=connections,
            connection_rate=round_rate(connection_rate),
            total_replies=replies,
            response_rate=round_rate(response_rate),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DailyActivity:
    date: date
    invites: int = 0
    connections: int = 0
    replies: int = 0


@dataclass
class ContactProgress:
    contact_id: int
    first_name: Optional[str]
    last_name: Optional[str]
    company_name: Optional[str]
    job_title: Optional[str]
    email: Optional[str]
    profile_link: Optional[str]
    linked_to_contact_id: Optional[int]
    linked_to_campaign_id: Optional[int]
    status: ProgressionStatus
    invited_at: Optional[datetime] = None
    connected_at: Optional[datetime] = None
    replied_at: Optional[datetime] = None

    @property
    def invited(self) -> bool:
        return self.invited_at is not None

    @property
    def connected(self) -> bool:
        return self.connected_at is not None

    @property
    def replied(self) -> bool:
        return self.status == ProgressionStatus.REPLIED


@dataclass
class CampaignSummary:
    campaign_id: int
    campaign_name: str
    instance_token: str
    started_at: Optional[datetime]
    kpis: KpiSummary


@dataclass
class AccountSummary:
    account_id: int
    display_name: str
    status: str
    campaigns_count: int
    kpis: KpiSummary


@dataclass
class Dashboard:
    scope: AnalyticsScope
    name: str
    kpis: KpiSummary
    timeline: list[DailyActivity]
    earliest_activity: Optional[date] = None
    campaigns: list[CampaignSummary] = field(default_factory=list)
    accounts: list[AccountSummary] = field(default_factory=list)


# =============================================================================
# PROGRESSION STATUS
# =============================================================================


def derive_progression_status(events: Iterable[Any]) -> ProgressionStatus:
    """Derive a contact's progression status from its events.

    Replied wins over Awaiting Reply, which wins over Pending Connection, so
    appending events can only move a contact forward. A reply is recognised
    by its timestamp or by a ``Replied`` conversation status (imported
    history may carry the label without a timestamp).
    """
    invited = connected = False
    for event in events:
        if event.replied_at is not None or (
            event.conversation_status == REPLIED_CONVERSATION_STATUS
        ):
            return ProgressionStatus.REPLIED
        if event.connected_at is not None:
            connected = True
        if event.invited_at is not None:
            invited = True

    if connected:
        return ProgressionStatus.AWAITING_REPLY
    if invited:
        return ProgressionStatus.PENDING_CONNECTION
    return ProgressionStatus.NOT_INVITED


# =============================================================================
# ENGINE
# =============================================================================


class _Deadline:
    """Wall-clock budget shared by the queries of one analytics call."""

    def __init__(self, seconds: Optional[float]):
        self.seconds = seconds
        self.started = time.monotonic()

    def check(self) -> None:
        if self.seconds is None:
            return
        if time.monotonic() - self.started > self.seconds:
            raise AnalyticsTimeout(
                f"analytics query exceeded {self.seconds:g}s"
            )


class AnalyticsEngine:
    """Derives KPIs, timelines and contact progress from the event log."""

    def __init__(self, db: DBSession, settings: Optional[Settings] = None):
        """Initialize the engine.

        Args:
            db: SQLAlchemy database session.
            settings: Application settings (defaults to the cached settings).
        """
        self.db = db
        self.settings = settings or get_settings()
        self.metrics = get_collector()

    def _deadline(self, timeout_seconds: Optional[float]) -> _Deadline:
        if timeout_seconds is None:
            timeout_seconds = self.settings.analytics_timeout_seconds
        return _Deadline(timeout_seconds)

    def _default_window(self, window: Optional[DateWindow]) -> DateWindow:
        return window or DateWindow(tz=self.settings.default_timezone)

    # -------------------------------------------------------------------------
    # Scope helpers
    # -------------------------------------------------------------------------

    def _scope_name(self, scope: AnalyticsScope) -> str:
        """Name of the scope's root record.

        Raises:
            NotFoundError: If the record does not exist.
        """
        if scope.level == AnalyticsScope.CAMPAIGN:
            record = self.db.get(Campaign, scope.id)
            name = record.campaign_name if record else None
        elif scope.level == AnalyticsScope.ACCOUNT:
            record = self.db.get(Account, scope.id)
            name = record.display_name if record else None
        elif scope.level == AnalyticsScope.TENANT:
            record = self.db.get(Tenant, scope.id)
            name = record.name if record else None
        else:
            raise ValueError(f"unknown scope level '{scope.level}'")

        if record is None:
            raise NotFoundError(f"{scope.level.capitalize()} {scope.id} not found")
        return name

    def _campaign_ids(self, scope: AnalyticsScope):
        """Subquery selecting the ids of every campaign in scope."""
        query = select(Campaign.id)
        if scope.level == AnalyticsScope.CAMPAIGN:
            return query.where(Campaign.id == scope.id)
        if scope.level == AnalyticsScope.ACCOUNT:
            return query.where(Campaign.account_id == scope.id)
        return query.where(
            Campaign.account_id.in_(select(Account.id).where(Account.tenant_id == scope.id))
        )

    @staticmethod
    def _within(column, window: DateWindow) -> list:
        start, end = window.bounds()
        conditions = [column.isnot(None)]
        if start is not None:
            conditions.append(column >= start)
        if end is not None:
            conditions.append(column <= end)
        return conditions

    def _first_replies(self, scope: AnalyticsScope):
        """Subquery of each in-scope contact's first reply timestamp."""
        return (
            select(
                Event.campaign_id.label("campaign_id"),
                Event.contact_id.label("contact_id"),
                func.min(Event.replied_at).label("first_replied_at"),
            )
            .where(
                Event.campaign_id.in_(self._campaign_ids(scope)),
                Event.replied_at.isnot(None),
            )
            .group_by(Event.campaign_id, Event.contact_id)
            .subquery()
        )

    def _counts_by_campaign(
        self, scope: AnalyticsScope, window: DateWindow, deadline: _Deadline
    ) -> dict[int, dict[str, int]]:
        """Per-campaign distinct-contact counts for each metric."""
        counts: dict[int, dict[str, int]] = defaultdict(
            lambda: {"invites": 0, "connections": 0, "replies": 0}
        )

        for metric in ("invites", "connections"):
            column = METRIC_COLUMNS[metric]
            rows = self.db.execute(
                select(Event.campaign_id, func.count(func.distinct(Event.contact_id)))
                .where(
                    Event.campaign_id.in_(self._campaign_ids(scope)),
                    *self._within(column, window),
                )
                .group_by(Event.campaign_id)
            ).all()
            for campaign_id, count in rows:
                counts[campaign_id][metric] = count
            deadline.check()

        first = self._first_replies(scope)
        rows = self.db.execute(
            select(first.c.campaign_id, func.count())
            .where(*self._within(first.c.first_replied_at, window))
            .group_by(first.c.campaign_id)
        ).all()
        for campaign_id, count in rows:
            counts[campaign_id]["replies"] = count
        deadline.check()

        return counts

    @staticmethod
    def _sum_counts(counts: Iterable[dict[str, int]]) -> KpiSummary:
        invites = connections = replies = 0
        for row in counts:
            invites += row["invites"]
            connections += row["connections"]
            replies += row["replies"]
        return KpiSummary.from_counts(invites, connections, replies)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_kpis(
        self,
        scope: AnalyticsScope,
        window: Optional[DateWindow] = None,
        timeout_seconds: Optional[float] = None,
    ) -> KpiSummary:
        """KPI summary for a scope and window.

        Args:
            scope: Campaign, account or tenant scope.
            window: Date window; open on both ends when omitted.
            timeout_seconds: Query budget (defaults to the configured budget).

        Returns:
            KpiSummary.

        Raises:
            NotFoundError: If the scope's record does not exist.
            AnalyticsTimeout: If the budget is exceeded.
        """
        window = self._default_window(window)
        deadline = self._deadline(timeout_seconds)
        with self.metrics.timed(ANALYTICS_QUERY_MS, labels={"query": "kpis"}):
            self._scope_name(scope)
            counts = self._counts_by_campaign(scope, window, deadline)
        return self._sum_counts(counts.values())

    def get_time_series(
        self,
        scope: AnalyticsScope,
        window: Optional[DateWindow] = None,
        timeout_seconds: Optional[float] = None,
    ) -> list[DailyActivity]:
        """Daily activity for a scope and window.

        Each metric is bucketed by the local calendar date of its own
        timestamp. A window with both bounds yields one row per day,
        zero-filled; otherwise only days with activity are returned.

        Raises:
            NotFoundError: If the scope's record does not exist.
            AnalyticsTimeout: If the budget is exceeded.
        """
        window = self._default_window(window)
        deadline = self._deadline(timeout_seconds)
        with self.metrics.timed(ANALYTICS_QUERY_MS, labels={"query": "time_series"}):
            self._scope_name(scope)
            days = self._daily_buckets(scope, window, deadline)

        if window.is_bounded:
            dates = list(iter_days(window.start, window.end))
        else:
            dates = sorted(days)

        return [
            DailyActivity(
                date=day,
                invites=len(days[day]["invites"]) if day in days else 0,
                connections=len(days[day]["connections"]) if day in days else 0,
                replies=len(days[day]["replies"]) if day in days else 0,
            )
            for day in dates
        ]

    def _daily_buckets(
        self, scope: AnalyticsScope, window: DateWindow, deadline: _Deadline
    ) -> dict[date, dict[str, set]]:
        zone = window.zone
        days: dict[date, dict[str, set]] = defaultdict(
            lambda: {"invites": set(), "connections": set(), "replies": set()}
        )

        def bucket(metric: str, rows) -> None:
            for campaign_id, contact_id, ts in rows:
                days[local_date(ts, zone)][metric].add((campaign_id, contact_id))

        for metric in ("invites", "connections"):
            column = METRIC_COLUMNS[metric]
            rows = self.db.execute(
                select(Event.campaign_id, Event.contact_id, column)
                .where(
                    Event.campaign_id.in_(self._campaign_ids(scope)),
                    *self._within(column, window),
                )
            ).all()
            bucket(metric, rows)
            deadline.check()

        first = self._first_replies(scope)
        rows = self.db.execute(
            select(first.c.campaign_id, first.c.contact_id, first.c.first_replied_at)
            .where(*self._within(first.c.first_replied_at, window))
        ).all()
        bucket("replies", rows)
        deadline.check()

        return days

    def get_contact_progress(
        self, campaign_id: int, timeout_seconds: Optional[float] = None
    ) -> list[ContactProgress]:
        """Every contact of a campaign with its derived progression status.

        Raises:
            NotFoundError: If the campaign does not exist.
            AnalyticsTimeout: If the budget is exceeded.
        """
        deadline = self._deadline(timeout_seconds)
        with self.metrics.timed(ANALYTICS_QUERY_MS, labels={"query": "contact_progress"}):
            self._scope_name(AnalyticsScope.campaign(campaign_id))

            contacts = (
                self.db.query(Contact)
                .filter(Contact.campaign_id == campaign_id)
                .order_by(Contact.first_name, Contact.last_name, Contact.contact_id)
                .all()
            )
            deadline.check()

            events_by_contact: dict[int, list[Event]] = defaultdict(list)
            for event in (
                self.db.query(Event)
                .filter(Event.campaign_id == campaign_id)
                .order_by(Event.created_at.asc(), Event.id.asc())
            ):
                events_by_contact[event.contact_id].append(event)
            deadline.check()

        progress = []
        for contact in contacts:
            events = events_by_contact.get(contact.contact_id, [])
            progress.append(
                ContactProgress(
                    contact_id=contact.contact_id,
                    first_name=contact.first_name,
                    last_name=contact.last_name,
                    company_name=contact.company_name,
                    job_title=contact.job_title,
                    email=contact.email,
                    profile_link=contact.profile_link,
                    linked_to_contact_id=contact.linked_to_contact_id,
                    linked_to_campaign_id=contact.linked_to_campaign_id,
                    status=derive_progression_status(events),
                    invited_at=_earliest(e.invited_at for e in events),
                    connected_at=_earliest(e.connected_at for e in events),
                    replied_at=_earliest(e.replied_at for e in events),
                )
            )
        return progress

    def earliest_activity_date(
        self, scope: AnalyticsScope, tz: Optional[str] = None
    ) -> Optional[date]:
        """Local date of the earliest event timestamp in scope."""
        self._scope_name(scope)
        row = self.db.execute(
            select(
                func.min(Event.created_at),
                func.min(Event.invited_at),
                func.min(Event.connected_at),
                func.min(Event.replied_at),
            ).where(Event.campaign_id.in_(self._campaign_ids(scope)))
        ).one()
        earliest = _earliest(row)
        if earliest is None:
            return None
        return local_date(earliest, resolve_timezone(tz or self.settings.default_timezone))

    # -------------------------------------------------------------------------
    # Dashboards
    # -------------------------------------------------------------------------

    def campaign_dashboard(
        self,
        campaign_id: int,
        window: Optional[DateWindow] = None,
        timeout_seconds: Optional[float] = None,
    ) -> Dashboard:
        """KPIs and timeline of one campaign."""
        scope = AnalyticsScope.campaign(campaign_id)
        window = self._default_window(window)
        deadline = self._deadline(timeout_seconds)
        name = self._scope_name(scope)

        counts = self._counts_by_campaign(scope, window, deadline)
        timeline = self.get_time_series(scope, window, timeout_seconds=_remaining(deadline))
        return Dashboard(
            scope=scope,
            name=name,
            kpis=self._sum_counts(counts.values()),
            timeline=timeline,
            earliest_activity=self.earliest_activity_date(scope, window.tz),
        )

    def account_dashboard(
        self,
        account_id: int,
        window: Optional[DateWindow] = None,
        timeout_seconds: Optional[float] = None,
    ) -> Dashboard:
        """KPIs and timeline of an account, with a summary per campaign."""
        scope = AnalyticsScope.account(account_id)
        window = self._default_window(window)
        deadline = self._deadline(timeout_seconds)
        name = self._scope_name(scope)

        counts = self._counts_by_campaign(scope, window, deadline)
        campaigns = (
            self.db.query(Campaign)
            .filter(Campaign.account_id == account_id)
            .order_by(Campaign.started_at.desc(), Campaign.id.desc())
            .all()
        )
        summaries = [
            CampaignSummary(
                campaign_id=campaign.id,
                campaign_name=campaign.campaign_name,
                instance_token=campaign.instance_token,
                started_at=campaign.started_at,
                kpis=self._sum_counts([counts[campaign.id]] if campaign.id in counts else []),
            )
            for campaign in campaigns
        ]
        timeline = self.get_time_series(scope, window, timeout_seconds=_remaining(deadline))
        return Dashboard(
            scope=scope,
            name=name,
            kpis=self._sum_counts(counts.values()),
            timeline=timeline,
            earliest_activity=self.earliest_activity_date(scope, window.tz),
            campaigns=summaries,
        )

    def tenant_dashboard(
        self,
        tenant_id: int,
        window: Optional[DateWindow] = None,
        timeout_seconds: Optional[float] = None,
    ) -> Dashboard:
        """KPIs and timeline of a tenant, with a summary per assigned account."""
        scope = AnalyticsScope.tenant(tenant_id)
        window = self._default_window(window)
        deadline = self._deadline(timeout_seconds)
        name = self._scope_name(scope)

        counts = self._counts_by_campaign(scope, window, deadline)
        accounts = (
            self.db.query(Account)
            .filter(Account.tenant_id == tenant_id)
            .order_by(Account.display_name, Account.id)
            .all()
        )
        campaign_accounts = dict(
            self.db.execute(
                select(Campaign.id, Campaign.account_id).where(
                    Campaign.id.in_(self._campaign_ids(scope))
                )
            ).all()
        )

        per_account: dict[int, list[dict[str, int]]] = defaultdict(list)
        campaigns_count: dict[int, int] = defaultdict(int)
        for campaign_id, owner_id in campaign_accounts.items():
            campaigns_count[owner_id] += 1
            if campaign_id in counts:
                per_account[owner_id].append(counts[campaign_id])

        summaries = [
            AccountSummary(
                account_id=account.id,
                display_name=account.display_name,
                status=account.status,
                campaigns_count=campaigns_count[account.id],
                kpis=self._sum_counts(per_account[account.id]),
            )
            for account in accounts
        ]
        timeline = self.get_time_series(scope, window, timeout_seconds=_remaining(deadline))
        return Dashboard(
            scope=scope,
            name=name,
            kpis=self._sum_counts(counts.values()),
            timeline=timeline,
            earliest_activity=self.earliest_activity_date(scope, window.tz),
            accounts=summaries,
        )


def _earliest(values: Iterable[Optional[datetime]]) -> Optional[datetime]:
    present = [value for value in values if value is not None]
    return min(present) if present else None


def _remaining(deadline: _Deadline) -> Optional[float]:
    """Budget left on a deadline, for handing to a nested query."""
    deadline.check()
    if deadline.seconds is None:
        return None
    return max(deadline.seconds - (time.monotonic() - deadline.started), 0.0)
