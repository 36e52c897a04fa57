"""Unit tests for the analytics engine.

Tests cover:
- KPI counting rules and rate rounding
- Dense and sparse daily time series
- Timezone-aware date windows
- Campaign, account and tenant scopes and dashboards
- Progression status derivation and contact progress
- Query deadlines
"""

import itertools
from datetime import date, datetime
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from sqlalchemy.orm import Session

from outreach_core.domain.errors import AnalyticsTimeout, NotFoundError
from outreach_core.domain.models import EventKind, ProgressionStatus
from outreach_core.domain.services.analytics import (
    AnalyticsEngine,
    AnalyticsScope,
    DateWindow,
    KpiSummary,
    derive_progression_status,
    round_rate,
)
from outreach_core.observability.metrics import ANALYTICS_QUERY_MS, get_collector
from tests.factories import (
    create_account,
    create_campaign,
    create_contact,
    create_event,
    create_tenant,
)


def _invite(db, campaign, contact_id, at):
    return create_event(db, campaign, contact_id, EventKind.INVITE_SENT, invited_at=at)


def _connect(db, campaign, contact_id, at):
    return create_event(db, campaign, contact_id, EventKind.CONNECTION_ACCEPTED, connected_at=at)


def _reply(db, campaign, contact_id, at):
    return create_event(db, campaign, contact_id, EventKind.CONTACT_REPLIED, replied_at=at)


@pytest.fixture
def engine(db_session: Session, test_settings) -> AnalyticsEngine:
    return AnalyticsEngine(db_session, settings=test_settings)


@pytest.fixture
def account(db_session: Session):
    return create_account(db_session)


@pytest.fixture
def campaign(db_session: Session, account):
    return create_campaign(db_session, account, started_at=datetime(2025, 10, 1))


@pytest.fixture
def funnel(db_session: Session, campaign):
    """10 invited, 4 connected, 2 replied."""
    for contact_id in range(1, 11):
        _invite(db_session, campaign, contact_id, datetime(2025, 10, 2, 10, 0))
    for contact_id in range(1, 5):
        _connect(db_session, campaign, contact_id, datetime(2025, 10, 3, 10, 0))
    for contact_id in range(1, 3):
        _reply(db_session, campaign, contact_id, datetime(2025, 10, 4, 10, 0))
    return campaign


class TestRates:
    """Tests for rate computation."""

    def test_funnel_rates(self):
        kpis = KpiSummary.from_counts(10, 4, 2)

        assert kpis.connection_rate == 40.0
        assert kpis.response_rate == 50.0

    def test_zero_denominators(self):
        kpis = KpiSummary.from_counts(0, 0, 0)

        assert kpis.connection_rate == 0
        assert kpis.response_rate == 0

    def test_round_half_up(self):
        assert round_rate(200 / 3) == 66.7
        assert round_rate(12.25) == 12.3
        assert round_rate(12.24) == 12.2


class TestGetKpis:
    """Tests for get_kpis."""

    def test_funnel_counts(self, engine, funnel):
        kpis = engine.get_kpis(AnalyticsScope.campaign(funnel.id))

        assert kpis.total_invites == 10
        assert kpis.total_connections == 4
        assert kpis.connection_rate == 40.0
        assert kpis.total_replies == 2
        assert kpis.response_rate == 50.0

    def test_repeated_invites_count_once(self, db_session, engine, campaign):
        _invite(db_session, campaign, 1, datetime(2025, 10, 2))
        _invite(db_session, campaign, 1, datetime(2025, 10, 3))

        kpis = engine.get_kpis(AnalyticsScope.campaign(campaign.id))

        assert kpis.total_invites == 1

    def test_no_invites_gives_zero_rates(self, db_session, engine, campaign):
        _connect(db_session, campaign, 1, datetime(2025, 10, 3))

        kpis = engine.get_kpis(AnalyticsScope.campaign(campaign.id))

        assert kpis.total_invites == 0
        assert kpis.connection_rate == 0

    def test_window_excludes_outside_activity(self, engine, funnel):
        window = DateWindow(date(2025, 10, 3), date(2025, 10, 3))

        kpis = engine.get_kpis(AnalyticsScope.campaign(funnel.id), window)

        assert kpis.total_invites == 0
        assert kpis.total_connections == 4
        assert kpis.total_replies == 0

    def test_replies_count_by_first_reply(self, db_session, engine, campaign):
        _reply(db_session, campaign, 1, datetime(2025, 9, 30))
        _reply(db_session, campaign, 1, datetime(2025, 10, 5))
        _reply(db_session, campaign, 2, datetime(2025, 10, 5))

        window = DateWindow(date(2025, 10, 1), date(2025, 10, 31))
        kpis = engine.get_kpis(AnalyticsScope.campaign(campaign.id), window)

        assert kpis.total_replies == 1

    def test_account_scope_sums_campaigns(self, db_session, engine, account, funnel):
        second = create_campaign(
            db_session, account, instance_token="2025-10-20+Jane Doe+B100", campaign_name="B100"
        )
        _invite(db_session, second, 1, datetime(2025, 10, 21))

        kpis = engine.get_kpis(AnalyticsScope.account(account.id))

        assert kpis.total_invites == 11

    def test_tenant_scope_covers_assigned_accounts(self, db_session, engine):
        tenant = create_tenant(db_session)
        assigned = create_account(db_session, tenant=tenant)
        unassigned = create_account(db_session, display_name="Loose Seat")
        _invite(
            db_session,
            create_campaign(db_session, assigned, instance_token="t-1", campaign_name="A"),
            1,
            datetime(2025, 10, 2),
        )
        _invite(
            db_session,
            create_campaign(db_session, unassigned, instance_token="t-2", campaign_name="B"),
            1,
            datetime(2025, 10, 2),
        )

        kpis = engine.get_kpis(AnalyticsScope.tenant(tenant.id))

        assert kpis.total_invites == 1

    def test_missing_scope_raises(self, engine):
        with pytest.raises(NotFoundError):
            engine.get_kpis(AnalyticsScope.account(999))

    def test_query_time_is_recorded(self, engine, funnel):
        engine.get_kpis(AnalyticsScope.campaign(funnel.id))

        stats = get_collector().get_histogram_stats(f"{ANALYTICS_QUERY_MS}{{query=kpis}}")
        assert stats["count"] == 1


class TestTimeSeries:
    """Tests for get_time_series."""

    def test_bounded_window_is_dense(self, db_session, engine, campaign):
        _invite(db_session, campaign, 1, datetime(2025, 10, 3, 12, 0))

        window = DateWindow(date(2025, 10, 1), date(2025, 10, 5))
        days = engine.get_time_series(AnalyticsScope.campaign(campaign.id), window)

        assert [d.date for d in days] == [date(2025, 10, day) for day in range(1, 6)]
        assert [d.invites for d in days] == [0, 0, 1, 0, 0]
        assert sum(1 for d in days if (d.invites, d.connections, d.replies) == (0, 0, 0)) == 4

    def test_open_window_lists_active_days_only(self, engine, funnel):
        days = engine.get_time_series(AnalyticsScope.campaign(funnel.id))

        assert [(d.date, d.invites, d.connections, d.replies) for d in days] == [
            (date(2025, 10, 2), 10, 0, 0),
            (date(2025, 10, 3), 0, 4, 0),
            (date(2025, 10, 4), 0, 0, 2),
        ]

    def test_days_follow_the_callers_timezone(self, db_session, engine, campaign):
        _invite(db_session, campaign, 1, datetime(2025, 10, 14, 23, 30))

        days = engine.get_time_series(
            AnalyticsScope.campaign(campaign.id), DateWindow(tz="Asia/Tokyo")
        )

        assert [d.date for d in days] == [date(2025, 10, 15)]

    def test_window_bounds_follow_the_callers_timezone(self, db_session, engine, campaign):
        _invite(db_session, campaign, 1, datetime(2025, 10, 14, 23, 30))
        scope = AnalyticsScope.campaign(campaign.id)

        tokyo_15th = DateWindow(date(2025, 10, 15), date(2025, 10, 15), "Asia/Tokyo")
        tokyo_14th = DateWindow(date(2025, 10, 14), date(2025, 10, 14), "Asia/Tokyo")

        assert engine.get_kpis(scope, tokyo_15th).total_invites == 1
        assert engine.get_kpis(scope, tokyo_14th).total_invites == 0


class TestDateWindow:
    """Tests for DateWindow."""

    def test_start_after_end_is_rejected(self):
        with pytest.raises(ValueError):
            DateWindow(date(2025, 10, 5), date(2025, 10, 1))

    def test_unknown_timezone_is_rejected(self):
        with pytest.raises(ValueError):
            DateWindow.from_strings("2025-10-01", "2025-10-05", "Nowhere/City")

    def test_bounds_cover_whole_days(self):
        window = DateWindow.from_strings("2025-10-01", "2025-10-05")

        assert window.bounds() == (
            datetime(2025, 10, 1, 0, 0),
            datetime(2025, 10, 5, 23, 59, 59, 999999),
        )


class TestProgressionStatus:
    """Tests for derive_progression_status."""

    @staticmethod
    def _event(**kwargs):
        values = {
            "invited_at": None,
            "connected_at": None,
            "replied_at": None,
            "conversation_status": None,
        }
        values.update(kwargs)
        return SimpleNamespace(**values)

    def test_no_events(self):
        assert derive_progression_status([]) == ProgressionStatus.NOT_INVITED

    def test_status_only_moves_forward(self):
        events = [self._event(invited_at=datetime(2025, 10, 1))]
        assert derive_progression_status(events) == ProgressionStatus.PENDING_CONNECTION

        events.append(self._event(connected_at=datetime(2025, 10, 2)))
        assert derive_progression_status(events) == ProgressionStatus.AWAITING_REPLY

        # A later invite never moves the contact back
        events.append(self._event(invited_at=datetime(2025, 10, 3)))
        assert derive_progression_status(events) == ProgressionStatus.AWAITING_REPLY

        events.append(self._event(replied_at=datetime(2025, 10, 4)))
        assert derive_progression_status(events) == ProgressionStatus.REPLIED

    def test_replied_conversation_status_counts_as_reply(self):
        events = [self._event(conversation_status="Replied")]

        assert derive_progression_status(events) == ProgressionStatus.REPLIED


class TestContactProgress:
    """Tests for get_contact_progress."""

    def test_statuses_and_order(self, db_session, engine, campaign):
        for contact_id, name in [(4, "Dan"), (2, "Bob"), (1, "Alice"), (3, "Cara")]:
            create_contact(db_session, campaign, contact_id=contact_id, first_name=name)
        _invite(db_session, campaign, 1, datetime(2025, 10, 2))
        _invite(db_session, campaign, 2, datetime(2025, 10, 2))
        _connect(db_session, campaign, 2, datetime(2025, 10, 3))
        create_event(db_session, campaign, 3, EventKind.UNKNOWN, conversation_status="Replied")

        progress = engine.get_contact_progress(campaign.id)

        assert [(p.first_name, p.status) for p in progress] == [
            ("Alice", ProgressionStatus.PENDING_CONNECTION),
            ("Bob", ProgressionStatus.AWAITING_REPLY),
            ("Cara", ProgressionStatus.REPLIED),
            ("Dan", ProgressionStatus.NOT_INVITED),
        ]
        bob = progress[1]
        assert bob.invited and bob.connected and not bob.replied
        assert bob.connected_at == datetime(2025, 10, 3)

    def test_missing_campaign(self, engine):
        with pytest.raises(NotFoundError):
            engine.get_contact_progress(999)


class TestDashboards:
    """Tests for the dashboard queries."""

    def test_account_dashboard_summarises_campaigns(self, db_session, engine, account, funnel):
        newer = create_campaign(
            db_session,
            account,
            instance_token="2025-10-20+Jane Doe+B100",
            campaign_name="B100",
            started_at=datetime(2025, 10, 20),
        )
        _invite(db_session, newer, 1, datetime(2025, 10, 21))

        dashboard = engine.account_dashboard(account.id)

        assert dashboard.name == "Jane Doe"
        assert dashboard.kpis.total_invites == 11
        assert [c.campaign_name for c in dashboard.campaigns] == ["B100", "A008+M003"]
        assert dashboard.campaigns[1].kpis.total_connections == 4
        assert dashboard.earliest_activity == date(2025, 10, 2)

    def test_tenant_dashboard_summarises_accounts(self, db_session, engine):
        tenant = create_tenant(db_session, name="Acme Clients")
        first = create_account(db_session, display_name="Alpha", tenant=tenant)
        second = create_account(db_session, display_name="Beta", tenant=tenant)
        campaign = create_campaign(db_session, first, instance_token="t-1", campaign_name="A")
        create_campaign(db_session, first, instance_token="t-2", campaign_name="B")
        _invite(db_session, campaign, 1, datetime(2025, 10, 2))

        dashboard = engine.tenant_dashboard(tenant.id)

        assert dashboard.name == "Acme Clients"
        assert [(a.display_name, a.campaigns_count) for a in dashboard.accounts] == [
            ("Alpha", 2),
            ("Beta", 0),
        ]
        assert dashboard.accounts[0].kpis.total_invites == 1
        assert dashboard.accounts[1].kpis.total_invites == 0
        assert second.id == dashboard.accounts[1].account_id

    def test_campaign_dashboard(self, engine, funnel):
        window = DateWindow(date(2025, 10, 1), date(2025, 10, 7))

        dashboard = engine.campaign_dashboard(funnel.id, window)

        assert dashboard.kpis.response_rate == 50.0
        assert len(dashboard.timeline) == 7


class TestDeadline:
    """Tests for analytics query deadlines."""

    def test_exceeded_deadline_raises(self, engine, funnel):
        with patch("outreach_core.domain.services.analytics.time") as mock_time:
            mock_time.monotonic.side_effect = itertools.count(0, 100)

            with pytest.raises(AnalyticsTimeout):
                engine.get_kpis(AnalyticsScope.campaign(funnel.id), timeout_seconds=1.0)

    def test_no_deadline_when_disabled(self, db_session, test_settings, funnel):
        settings = test_settings.model_copy(update={"analytics_timeout_seconds": None})
        engine = AnalyticsEngine(db_session, settings=settings)

        with patch("outreach_core.domain.services.analytics.time") as mock_time:
            mock_time.monotonic.side_effect = itertools.count(0, 100)

            kpis = engine.get_kpis(AnalyticsScope.campaign(funnel.id))

        assert kpis.total_invites == 10
