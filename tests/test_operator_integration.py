"""Integration tests for the operator tooling endpoints."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import Session

from outreach_core.api.deps import get_app_settings
from outreach_core.domain.models import (
    ErrorNotification,
    Event,
    EventKind,
    FailedWebhookArchive,
    Severity,
)
from outreach_core.domain.services.failures import FailureArchiveService, NotificationService
from outreach_core.util.dates import utcnow
from tests.factories import (
    build_payload,
    create_account,
    create_campaign,
    create_contact,
    create_event,
)


@pytest.fixture
def account(db_session: Session):
    account = create_account(db_session)
    db_session.commit()
    return account


@pytest.fixture
def archived(db_session: Session, account) -> list[int]:
    """Two archived failures: a replayable one and an unrelated warning."""
    service = FailureArchiveService(db_session)
    replayable = service.create(
        routing_key=account.routing_key,
        raw_payload=build_payload(),
        error_message="database connection lost",
        retry_count=3,
        severity=Severity.CRITICAL,
        contact_id=101,
    )
    other = service.create(
        routing_key="rk-gone",
        raw_payload=build_payload(),
        error_message="Account with routing key rk-gone not found",
        retry_count=1,
        severity=Severity.WARNING,
    )
    db_session.commit()
    return [replayable.id, other.id]


@pytest.fixture
def notification_ids(db_session: Session) -> list[int]:
    service = NotificationService(db_session)
    ids = [service.create(f"failure {n}", severity=Severity.ERROR).id for n in range(3)]
    db_session.commit()
    return ids


class TestFailuresEndpoints:
    """Tests for /operator/failures."""

    @pytest.mark.asyncio
    async def test_list_and_filter(self, client, archived):
        response = await client.get("/operator/failures")

        assert response.status_code == 200
        data = response.json()
        assert len(data["entries"]) == 2
        assert data["limit"] == 50

        response = await client.get("/operator/failures", params={"severity": "warning"})
        assert [e["id"] for e in response.json()["entries"]] == [archived[1]]

    @pytest.mark.asyncio
    async def test_invalid_severity_filter(self, client, archived):
        response = await client.get("/operator/failures", params={"severity": "fatal"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_resolve_one_and_many(self, client, archived):
        response = await client.post(f"/operator/failures/{archived[0]}/resolve")
        assert response.status_code == 200
        assert response.json()["resolved"] is True

        response = await client.post("/operator/failures/resolve", json={"ids": archived})
        assert response.json() == {"resolved": 1}

        response = await client.get("/operator/failures", params={"unresolved_only": True})
        assert response.json()["entries"] == []

    @pytest.mark.asyncio
    async def test_resolve_many_requires_ids(self, client, archived):
        response = await client.post("/operator/failures/resolve", json={"ids": []})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_delete(self, client, archived, db_session):
        response = await client.delete(f"/operator/failures/{archived[1]}")

        assert response.status_code == 200
        assert response.json() == {"deleted": True, "id": archived[1]}
        assert (await client.delete(f"/operator/failures/{archived[1]}")).status_code == 404

        db_session.expire_all()
        assert db_session.query(FailedWebhookArchive).count() == 1

    @pytest.mark.asyncio
    async def test_replay_resolves_record(self, client, archived, db_session):
        response = await client.post(f"/operator/failures/{archived[0]}/replay")

        assert response.status_code == 200
        data = response.json()
        assert data["archive_id"] == archived[0]
        assert data["event_kind"] == "invite_sent"

        db_session.expire_all()
        assert db_session.get(FailedWebhookArchive, archived[0]).resolved is True
        assert db_session.query(Event).count() == 1

    @pytest.mark.asyncio
    async def test_replay_failure_archives_again(self, client, archived, db_session):
        response = await client.post(f"/operator/failures/{archived[1]}/replay")

        assert response.status_code == 404
        assert response.json()["success"] is False

        db_session.expire_all()
        assert db_session.get(FailedWebhookArchive, archived[1]).resolved is False
        assert db_session.query(FailedWebhookArchive).count() == 3

    @pytest.mark.asyncio
    async def test_replay_missing_record(self, client):
        response = await client.post("/operator/failures/999/replay")

        assert response.status_code == 404


class TestNotificationsEndpoints:
    """Tests for /operator/notifications."""

    @pytest.mark.asyncio
    async def test_list_count_resolve_delete(self, client, notification_ids):
        response = await client.get("/operator/notifications/count")
        assert response.json() == {"unresolved": 3}

        response = await client.post(f"/operator/notifications/{notification_ids[0]}/resolve")
        assert response.status_code == 200
        assert response.json()["resolved"] is True

        response = await client.post(
            "/operator/notifications/resolve", json={"ids": notification_ids[1:]}
        )
        assert response.json() == {"resolved": 2}

        response = await client.get("/operator/notifications")
        assert response.json()["entries"] == []
        response = await client.get("/operator/notifications", params={"include_resolved": True})
        assert len(response.json()["entries"]) == 3

        response = await client.delete(f"/operator/notifications/{notification_ids[0]}")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_resolve_missing(self, client):
        response = await client.post("/operator/notifications/999/resolve")

        assert response.status_code == 404


class TestMaintenanceEndpoints:
    """Tests for purge, stats and activity."""

    @pytest.mark.asyncio
    async def test_purge(self, client, db_session, archived, notification_ids):
        old = utcnow() - timedelta(days=45)
        db_session.get(FailedWebhookArchive, archived[0]).failed_at = old
        for notification_id in notification_ids[:2]:
            notification = db_session.get(ErrorNotification, notification_id)
            notification.created_at = old
            notification.resolved = True
        db_session.get(ErrorNotification, notification_ids[2]).created_at = old
        db_session.commit()

        response = await client.post("/operator/purge", json={"days": 30})

        assert response.status_code == 200
        assert response.json() == {
            "days": 30,
            "archives_deleted": 1,
            "notifications_deleted": 2,
        }

    @pytest.mark.asyncio
    async def test_purge_defaults_to_configured_retention(self, client):
        response = await client.post("/operator/purge")

        assert response.status_code == 200
        assert response.json()["days"] == 30

    @pytest.mark.asyncio
    async def test_stats(self, client, archived, notification_ids):
        response = await client.get("/operator/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["archive"]["total"] == 2
        assert data["archive"]["by_severity"]["critical"] == 1
        assert data["notifications"]["unresolved"] == 3

    @pytest.mark.asyncio
    async def test_activity(self, client, db_session, account):
        campaign = create_campaign(db_session, account)
        create_event(db_session, campaign, created_at=datetime(2025, 10, 2))
        create_event(
            db_session, campaign, kind=EventKind.CONTACT_REPLIED, created_at=datetime(2025, 10, 3)
        )
        db_session.commit()

        response = await client.get("/operator/activity", params={"limit": 1})

        entries = response.json()["entries"]
        assert len(entries) == 1
        assert entries[0]["event_kind"] == "contact_replied"
        assert entries[0]["account_name"] == "Jane Doe"


class TestProgressCorrections:
    """Tests for PUT /operator/campaigns/{id}/contacts/{id}/events."""

    @pytest.fixture
    def campaign_id(self, db_session: Session, account) -> int:
        campaign = create_campaign(db_session, account)
        create_contact(db_session, campaign, contact_id=101)
        create_event(db_session, campaign, invited_at=datetime(2025, 10, 2))
        db_session.commit()
        return campaign.id

    @pytest.mark.asyncio
    async def test_check_connection(self, client, campaign_id):
        response = await client.put(
            f"/operator/campaigns/{campaign_id}/contacts/101/events",
            json={"connected": {"checked": True, "at": "2025-10-03T10:00:00Z"}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "Awaiting Reply"
        assert data["events"][0]["connected_at"].startswith("2025-10-03T10:00:00")

    @pytest.mark.asyncio
    async def test_uncheck_invite(self, client, campaign_id):
        response = await client.put(
            f"/operator/campaigns/{campaign_id}/contacts/101/events",
            json={"invited": {"checked": False}},
        )

        assert response.json()["status"] == "Not Invited"

    @pytest.mark.asyncio
    async def test_requires_a_stage(self, client, campaign_id):
        response = await client.put(
            f"/operator/campaigns/{campaign_id}/contacts/101/events", json={}
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_contact(self, client, campaign_id):
        response = await client.put(
            f"/operator/campaigns/{campaign_id}/contacts/999/events",
            json={"invited": {"checked": True}},
        )

        assert response.status_code == 404


class TestOperatorKey:
    """Tests for the operator key guard."""

    @pytest.mark.asyncio
    async def test_key_required_when_configured(self, client, test_app, test_settings):
        settings = test_settings.model_copy(update={"operator_api_key": "s3cret"})
        test_app.dependency_overrides[get_app_settings] = lambda: settings

        assert (await client.get("/operator/stats")).status_code == 401
        wrong = await client.get("/operator/stats", headers={"X-Operator-Key": "nope"})
        assert wrong.status_code == 401
        right = await client.get("/operator/stats", headers={"X-Operator-Key": "s3cret"})
        assert right.status_code == 200

    @pytest.mark.asyncio
    async def test_open_without_key(self, client):
        assert (await client.get("/operator/stats")).status_code == 200
