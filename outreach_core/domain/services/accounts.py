"""Tenant and account provisioning.

Accounts must exist before they can receive webhooks. Each account gets an
opaque routing key at creation; the key never changes afterwards and is
the only way an inbound call is matched to its account.
"""

import uuid
from typing import Optional

from sqlalchemy.orm import Session as DBSession

from outreach_core.domain.errors import NotFoundError
from outreach_core.domain.models import Account, AccountStatus, Tenant


def generate_routing_key() -> str:
    """New random routing key."""
    return uuid.uuid4().hex


class AccountService:
    """Service for tenant and account operations."""

    def __init__(self, db: DBSession):
        self.db = db

    def create_tenant(self, name: str) -> Tenant:
        """Create a tenant.

        Raises:
            ValueError: If the name is empty.
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("tenant name is required")

        tenant = Tenant(name=name)
        self.db.add(tenant)
        self.db.flush()
        return tenant

    def get_tenant(self, tenant_id: int) -> Tenant:
        tenant = self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFoundError(f"Tenant {tenant_id} not found")
        return tenant

    def create_account(
        self,
        display_name: str,
        email: Optional[str] = None,
        tenant_id: Optional[int] = None,
        external_account_id: Optional[int] = None,
    ) -> Account:
        """Provision an account with a fresh routing key.

        Args:
            display_name: Human readable account name.
            email: Optional contact email of the seat owner.
            tenant_id: Optional owning tenant; the account is assigned when set.
            external_account_id: Automation tool's own account id, if known.

        Returns:
            The created Account.

        Raises:
            ValueError: If the display name is empty.
            NotFoundError: If the tenant does not exist.
        """
        display_name = (display_name or "").strip()
        if not display_name:
            raise ValueError("display_name is required")
        if tenant_id is not None:
            self.get_tenant(tenant_id)

        account = Account(
            display_name=display_name,
            email=email,
            tenant_id=tenant_id,
            external_account_id=external_account_id,
            routing_key=generate_routing_key(),
            status=AccountStatus.ASSIGNED if tenant_id is not None else AccountStatus.UNASSIGNED,
        )
        self.db.add(account)
        self.db.flush()
        return account

    def get_account(self, account_id: int) -> Account:
        account = self.db.get(Account, account_id)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found")
        return account

    def get_by_routing_key(self, routing_key: str) -> Optional[Account]:
        """Look up an account by routing key; the key is matched exactly."""
        if not routing_key:
            return None
        return self.db.query(Account).filter(Account.routing_key == routing_key).first()

    def assign_tenant(self, account_id: int, tenant_id: int) -> Account:
        """Assign an account to a tenant."""
        account = self.get_account(account_id)
        self.get_tenant(tenant_id)
        account.tenant_id = tenant_id
        account.status = AccountStatus.ASSIGNED
        self.db.flush()
        return account

    def unassign(self, account_id: int) -> Account:
        """Detach an account from its tenant."""
        account = self.get_account(account_id)
        account.tenant_id = None
        account.status = AccountStatus.UNASSIGNED
        self.db.flush()
        return account

    def delete_account(self, account_id: int) -> None:
        """Delete an account with its campaigns, contacts and events."""
        account = self.get_account(account_id)
        self.db.delete(account)
        self.db.flush()
