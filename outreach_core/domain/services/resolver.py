"""Entity resolution for inbound webhooks.

Resolves one decoded webhook payload against the account -> campaign ->
contact hierarchy and appends the matching event:

1. Reject oversized payloads and payloads missing a required field
2. Find the account by routing key (accounts are never created here)
3. Find or create the campaign from the instance token
4. Upsert the contact on (contact id, campaign id)
5. Append the event; a second reply for one contact returns the first

The resolver only flushes. The caller owns the transaction and calls
``announce`` once it has committed.

Usage:
    resolver = EntityResolver(db, broadcaster=broadcaster)
    result = resolver.resolve(payload, routing_key)
    db.commit()
    resolver.announce(result)
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DBSession

from outreach_core.config import Settings, get_settings
from outreach_core.domain.errors import (
    MissingRequiredField,
    PayloadTooLarge,
    UnknownAccount,
)
from outreach_core.domain.models import Account, Campaign, Contact, Event, EventKind
from outreach_core.domain.services.accounts import AccountService
from outreach_core.domain.services.contact_linker import ContactLinker
from outreach_core.domain.services.event_kinds import map_event_kind
from outreach_core.domain.services.event_log import KIND_TIMESTAMP_FIELD, EventLogService
from outreach_core.domain.services.instance_tokens import parse_instance_token
from outreach_core.domain.services.payload import ContactBlock, WebhookPayload
from outreach_core.infrastructure.broadcast import PROCESSED_WEBHOOK, Broadcaster
from outreach_core.observability.logging import get_logger
from outreach_core.util.dates import is_valid_timestamp, parse_timestamp, utcnow
from outreach_core.util.text import strip_html

logger = get_logger(__name__)

CONTACT_TEXT_FIELDS = (
    "first_name",
    "last_name",
    "company_name",
    "job_title",
    "profile_link",
    "email",
    "phone",
)


def payload_size(payload: Any) -> int:
    """Length of the payload serialized as compact JSON."""
    return len(json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str))


@dataclass
class ResolvedWebhook:
    """Outcome of resolving one webhook."""

    account: Account
    campaign: Campaign
    contact: Contact
    event: Event
    duplicate_reply: bool = False

    @property
    def event_kind(self) -> str:
        return self.event.event_kind

    def to_dict(self) -> dict:
        return {
            "account_id": self.account.id,
            "campaign_id": self.campaign.id,
            "campaign_name": self.campaign.campaign_name,
            "contact_id": self.contact.contact_id,
            "event_id": self.event.id,
            "event_kind": self.event.event_kind,
            "duplicate_reply": self.duplicate_reply,
        }


class EntityResolver:
    """Resolves webhook payloads into campaigns, contacts and events."""

    def __init__(
        self,
        db: DBSession,
        settings: Optional[Settings] = None,
        broadcaster: Optional[Broadcaster] = None,
    ):
        """Initialize the resolver.

        Args:
            db: SQLAlchemy database session.
            settings: Application settings (defaults to the cached settings).
            broadcaster: Optional fan-out for processed events.
        """
        self.db = db
        self.settings = settings or get_settings()
        self.broadcaster = broadcaster
        self.accounts = AccountService(db)
        self.events = EventLogService(db)

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def resolve(self, payload: Any, routing_key: str) -> ResolvedWebhook:
        """Resolve a webhook payload.

        Args:
            payload: Decoded JSON body.
            routing_key: Routing key from the request path.

        Returns:
            ResolvedWebhook with the account, campaign, contact and event.

        Raises:
            PayloadTooLarge: If the serialized payload exceeds the ceiling.
            MissingRequiredField: If contact id, instance token or account id
                is missing.
            UnknownAccount: If no account has the routing key.
        """
        size = payload_size(payload)
        limit = self.settings.webhook_max_payload_bytes
        if size > limit:
            raise PayloadTooLarge(size, limit)

        parsed = self._parse(payload)

        account = self.accounts.get_by_routing_key(routing_key)
        if account is None:
            raise UnknownAccount(routing_key)

        fired_at = None
        if parsed.hook is not None:
            fired_at = parse_timestamp(parsed.hook.fired_datetime)
        if fired_at is None:
            fired_at = utcnow()

        campaign = self.resolve_campaign(account, parsed.messenger.campaign_instance, fired_at)
        contact = self.resolve_contact(account, campaign, parsed.contact)

        kind = map_event_kind(parsed.hook.event if parsed.hook is not None else None)
        event, duplicate = self.append_event(
            campaign, contact, kind, payload, parsed, fired_at
        )

        logger.info(
            "webhook resolved",
            routing_key=routing_key,
            campaign_id=campaign.id,
            contact_id=contact.contact_id,
            event_kind=event.event_kind,
            duplicate_reply=duplicate,
        )

        return ResolvedWebhook(
            account=account,
            campaign=campaign,
            contact=contact,
            event=event,
            duplicate_reply=duplicate,
        )

    def announce(self, result: ResolvedWebhook) -> None:
        """Publish a processed event to live viewers.

        Call after the resolving transaction commits. Publish failures are
        logged and never raised.
        """
        self.publish(self.announcement(result))

    def announcement(self, result: ResolvedWebhook) -> dict:
        """Build the ``processed_webhook`` message for a result."""
        return {
            "type": PROCESSED_WEBHOOK,
            "routing_key": result.account.routing_key,
            "account_name": result.account.display_name,
            **result.to_dict(),
            "contact_name": " ".join(
                part for part in (result.contact.first_name, result.contact.last_name) if part
            ),
            "timestamp": utcnow().isoformat(),
        }

    def publish(self, message: dict) -> None:
        """Publish a prepared message; failures are logged, never raised."""
        if self.broadcaster is None:
            return
        try:
            self.broadcaster.publish(self.settings.broadcast_channel, message)
        except Exception:
            logger.warning(
                "broadcast publish failed",
                exc_info=True,
                event_id=message.get("event_id"),
            )

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _parse(self, payload: Any) -> WebhookPayload:
        if not isinstance(payload, dict):
            raise MissingRequiredField(["contact", "messenger"])

        try:
            parsed = WebhookPayload.model_validate(payload)
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            raise MissingRequiredField(fields) from e

        missing = parsed.missing_required_fields()
        if missing:
            raise MissingRequiredField(missing)
        return parsed

    def resolve_campaign(
        self, account: Account, instance_token: str, fired_at: datetime
    ) -> Campaign:
        """Find or create the campaign for an instance token.

        Lookup order is the exact token, then a campaign of the same account
        with the same derived name (which takes over the new token), then a
        new campaign started at the fired time.
        """
        campaign = self._campaign_by_token(instance_token)

        if campaign is None:
            campaign_name = parse_instance_token(instance_token).campaign_name
            campaign = self._campaign_by_name(account.id, campaign_name)
            if campaign is not None:
                logger.info(
                    "instance token attached to campaign",
                    campaign_id=campaign.id,
                    campaign_name=campaign_name,
                )
                campaign.instance_token = instance_token
                self.db.flush()
            else:
                campaign = self._create_campaign(
                    account, instance_token, campaign_name, fired_at
                )

        if not is_valid_timestamp(campaign.started_at):
            earliest = self.events.earliest_timestamp(campaign.id)
            campaign.started_at = earliest or fired_at
            self.db.flush()

        return campaign

    def _campaign_by_token(self, instance_token: str) -> Optional[Campaign]:
        return (
            self.db.query(Campaign)
            .filter(Campaign.instance_token == instance_token)
            .first()
        )

    def _campaign_by_name(self, account_id: int, campaign_name: str) -> Optional[Campaign]:
        return (
            self.db.query(Campaign)
            .filter(
                Campaign.account_id == account_id,
                Campaign.campaign_name == campaign_name,
            )
            .order_by(Campaign.created_at.asc(), Campaign.id.asc())
            .first()
        )

    def _create_campaign(
        self,
        account: Account,
        instance_token: str,
        campaign_name: str,
        started_at: datetime,
    ) -> Campaign:
        campaign = Campaign(
            account_id=account.id,
            instance_token=instance_token,
            campaign_name=campaign_name,
            started_at=started_at,
        )
        try:
            with self.db.begin_nested():
                self.db.add(campaign)
        except IntegrityError:
            # Lost a race with a concurrent insert of the same token
            existing = self._campaign_by_token(instance_token)
            if existing is None:
                raise
            return existing
        return campaign

    def resolve_contact(
        self, account: Account, campaign: Campaign, block: ContactBlock
    ) -> Contact:
        """Upsert the contact row for this campaign.

        Non-empty incoming values overwrite stored ones; empty values never
        clear stored data.
        """
        incoming = {
            "first_name": strip_html(block.first_name),
            "last_name": strip_html(block.last_name),
            "company_name": strip_html(block.resolved_company_name),
            "job_title": strip_html(block.job_title),
            "profile_link": strip_html(block.resolved_profile_link),
            "email": strip_html(block.email),
            "phone": strip_html(block.phone),
        }
        values = {field: value for field, value in incoming.items() if value}

        # The row lock serializes deliveries for one contact until commit
        contact = self.db.get(Contact, (block.id, campaign.id), with_for_update=True)
        if contact is None:
            contact = Contact(contact_id=block.id, campaign_id=campaign.id, **values)
            try:
                with self.db.begin_nested():
                    self.db.add(contact)
            except IntegrityError:
                # Inserted concurrently; fall through to the update path
                contact = self.db.get(
                    Contact,
                    (block.id, campaign.id),
                    populate_existing=True,
                    with_for_update=True,
                )
                if contact is None:
                    raise
                self._update_contact(contact, values)
        else:
            self._update_contact(contact, values)

        if self.settings.contact_link_enabled:
            ContactLinker(self.db).link(contact, account)
            self.db.flush()

        return contact

    def _update_contact(self, contact: Contact, values: dict) -> None:
        for field in CONTACT_TEXT_FIELDS:
            if field in values:
                setattr(contact, field, values[field])
        self.db.flush()

    def append_event(
        self,
        campaign: Campaign,
        contact: Contact,
        kind: EventKind,
        payload: dict,
        parsed: WebhookPayload,
        fired_at: datetime,
    ) -> tuple[Event, bool]:
        """Append the event for this webhook.

        Returns:
            Tuple of (event, duplicate_reply). A reply for a contact that
            already has one returns the existing event unchanged.
        """
        if kind == EventKind.CONTACT_REPLIED:
            # Runs under the contact row lock taken in resolve_contact
            existing = self.events.find_latest_of_kind(
                campaign.id, contact.contact_id, EventKind.CONTACT_REPLIED, for_update=True
            )
            if existing is not None:
                logger.info(
                    "duplicate reply skipped",
                    campaign_id=campaign.id,
                    contact_id=contact.contact_id,
                    event_id=existing.id,
                )
                return existing, True

        messenger = parsed.messenger
        timestamps = {}
        field = KIND_TIMESTAMP_FIELD.get(kind)
        if field is not None:
            timestamps[field] = parse_timestamp(getattr(messenger, field)) or fired_at

        event = self.events.append(
            campaign.id,
            contact.contact_id,
            kind,
            payload,
            conversation_status=strip_html(messenger.conversation_status) or None,
            **timestamps,
        )
        return event, False
