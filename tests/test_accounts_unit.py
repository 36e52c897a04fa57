"""Unit tests for tenant and account provisioning."""

import re

import pytest
from sqlalchemy.orm import Session

from outreach_core.domain.errors import NotFoundError
from outreach_core.domain.models import AccountStatus, Campaign, Contact, Event
from outreach_core.domain.services.accounts import AccountService
from tests.factories import create_campaign, create_contact, create_event


@pytest.fixture
def service(db_session: Session) -> AccountService:
    return AccountService(db_session)


class TestAccountService:
    """Tests for AccountService."""

    def test_create_account_generates_routing_key(self, service):
        account = service.create_account("Jane Doe", email="jane@agency.example")

        assert re.fullmatch(r"[0-9a-f]{32}", account.routing_key)
        assert account.status == AccountStatus.UNASSIGNED
        assert account.tenant_id is None

    def test_routing_keys_are_unique(self, service):
        first = service.create_account("One")
        second = service.create_account("Two")

        assert first.routing_key != second.routing_key

    def test_create_account_with_tenant_is_assigned(self, service):
        tenant = service.create_tenant("Acme Clients")

        account = service.create_account("Jane Doe", tenant_id=tenant.id)

        assert account.status == AccountStatus.ASSIGNED
        assert account.tenant_id == tenant.id

    def test_create_account_with_missing_tenant(self, service):
        with pytest.raises(NotFoundError):
            service.create_account("Jane Doe", tenant_id=999)

    def test_create_requires_names(self, service):
        with pytest.raises(ValueError):
            service.create_tenant("  ")
        with pytest.raises(ValueError):
            service.create_account("")

    def test_lookup_by_routing_key(self, service):
        account = service.create_account("Jane Doe")

        assert service.get_by_routing_key(account.routing_key).id == account.id
        assert service.get_by_routing_key(account.routing_key.upper()) is None
        assert service.get_by_routing_key("") is None

    def test_assign_and_unassign(self, service):
        tenant = service.create_tenant("Acme Clients")
        account = service.create_account("Jane Doe")
        routing_key = account.routing_key

        service.assign_tenant(account.id, tenant.id)
        assert account.status == AccountStatus.ASSIGNED

        service.unassign(account.id)
        assert account.status == AccountStatus.UNASSIGNED
        assert account.tenant_id is None
        assert account.routing_key == routing_key

    def test_delete_account_cascades(self, db_session, service):
        account = service.create_account("Jane Doe")
        campaign = create_campaign(db_session, account)
        create_contact(db_session, campaign)
        create_event(db_session, campaign)

        service.delete_account(account.id)
        db_session.expire_all()

        assert db_session.query(Campaign).count() == 0
        assert db_session.query(Contact).count() == 0
        assert db_session.query(Event).count() == 0
