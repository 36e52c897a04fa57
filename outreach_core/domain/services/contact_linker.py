"""Cross-campaign contact linking.

The same person gets one contact row per campaign. When linking is enabled
a new row is pointed at the earliest earlier row believed to be the same
person, so reports can group them. Rows and their events are never merged.

Two contacts are considered the same person when they belong to different
campaigns within one tenant (or one account, while the account is
unassigned) and either their normalized profile links or their emails
(case-insensitive) are equal.
"""

from typing import Optional
from urllib.parse import urlsplit

from sqlalchemy import String, func, or_
from sqlalchemy.orm import Session as DBSession

from outreach_core.domain.models import Account, Campaign, Contact


def normalize_profile_link(link: Optional[str]) -> Optional[str]:
    """Canonical form of a profile link or bare public identifier.

    Drops the scheme, a leading ``www.``, query string, fragment and
    trailing slashes, and lowercases the result.
    """
    if not link:
        return None
    value = link.strip().lower()
    if not value:
        return None

    if "://" not in value and "/" in value:
        value = "//" + value
    parts = urlsplit(value)
    host = parts.netloc
    if host.startswith("www."):
        host = host[4:]
    normalized = f"{host}{parts.path}".rstrip("/")
    return normalized or None


def profile_identifier(link: Optional[str]) -> Optional[str]:
    """Last path segment of a normalized profile link."""
    normalized = normalize_profile_link(link)
    if not normalized:
        return None
    return normalized.rsplit("/", 1)[-1]


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    value = email.strip().lower()
    return value or None


class ContactLinker:
    """Finds an earlier contact row for the same person."""

    def __init__(self, db: DBSession):
        self.db = db

    def find_link(self, contact: Contact, account: Account) -> Optional[Contact]:
        """Earliest matching row in another campaign.

        Args:
            contact: The row being resolved.
            account: The account the row's campaign belongs to.

        Returns:
            The matching contact row, or None.
        """
        email = normalize_email(contact.email)
        link = normalize_profile_link(contact.profile_link)
        identifier = profile_identifier(contact.profile_link)
        if not email and not link:
            return None

        query = (
            self.db.query(Contact)
            .join(Campaign, Contact.campaign_id == Campaign.id)
            .filter(Contact.campaign_id != contact.campaign_id)
        )
        if account.tenant_id is not None:
            query = query.join(Account, Campaign.account_id == Account.id).filter(
                Account.tenant_id == account.tenant_id
            )
        else:
            query = query.filter(Campaign.account_id == account.id)

        conditions = []
        if email:
            conditions.append(func.lower(Contact.email) == email)
        if identifier:
            conditions.append(
                func.lower(Contact.profile_link, type_=String).contains(identifier)
            )
        query = query.filter(or_(*conditions)).order_by(
            Contact.created_at.asc(), Contact.contact_id.asc()
        )

        for candidate in query.all():
            if email and normalize_email(candidate.email) == email:
                return candidate
            if link and normalize_profile_link(candidate.profile_link) == link:
                return candidate
        return None

    def link(self, contact: Contact, account: Account) -> Optional[tuple[int, int]]:
        """Link a row that has no link yet to the earliest matching row.

        Returns:
            The linked row's (contact_id, campaign_id) key, or None.
        """
        if contact.linked_to_contact_id is not None:
            return contact.linked_to_contact_id, contact.linked_to_campaign_id

        match = self.find_link(contact, account)
        if match is None:
            return None
        contact.linked_to_contact_id = match.contact_id
        contact.linked_to_campaign_id = match.campaign_id
        return match.contact_id, match.campaign_id
