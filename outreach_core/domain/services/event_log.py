"""Event log store for Outreach Ledger.

Events are append-only facts about a contact's progression in a campaign.
The one sanctioned mutation is ``correct_contact_progress``, an explicit
operator correction of a contact's typed timestamps.

Usage:
    log = EventLogService(db)
    event = log.append(campaign.id, 42, EventKind.INVITE_SENT, payload, invited_at=ts)
    history = log.list_for_contact(campaign.id, 42)
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session as DBSession

from outreach_core.domain.models import (
    REPLIED_CONVERSATION_STATUS,
    Account,
    Campaign,
    Event,
    EventKind,
)
from outreach_core.util.dates import to_naive_utc, utcnow

# Typed timestamp column per kind; unknown events carry none
KIND_TIMESTAMP_FIELD = {
    EventKind.INVITE_SENT: "invited_at",
    EventKind.CONNECTION_ACCEPTED: "connected_at",
    EventKind.CONTACT_REPLIED: "replied_at",
}

MANUAL_SOURCE_PAYLOAD = {"source": "manual"}


@dataclass
class ProgressCorrection:
    """Requested state of one progression stage."""

    checked: bool
    at: Optional[datetime] = None


class EventLogService:
    """Service for event log operations."""

    def __init__(self, db: DBSession):
        """Initialize the event log service.

        Args:
            db: SQLAlchemy database session.
        """
        self.db = db

    def append(
        self,
        campaign_id: int,
        contact_id: int,
        kind: EventKind,
        payload: Optional[dict],
        invited_at: Optional[datetime] = None,
        connected_at: Optional[datetime] = None,
        replied_at: Optional[datetime] = None,
        conversation_status: Optional[str] = None,
    ) -> Event:
        """Append a new event.

        Args:
            campaign_id: Owning campaign ID.
            contact_id: External contact ID.
            kind: Internal event kind.
            payload: Raw payload kept for audit.
            invited_at: Invite timestamp (naive UTC).
            connected_at: Connection timestamp (naive UTC).
            replied_at: Reply timestamp (naive UTC).
            conversation_status: Conversation status label from the sender.

        Returns:
            The created Event.
        """
        event = Event(
            campaign_id=campaign_id,
            contact_id=contact_id,
            event_kind=EventKind(kind).value,
            payload=payload,
            invited_at=invited_at,
            connected_at=connected_at,
            replied_at=replied_at,
            conversation_status=conversation_status,
            created_at=utcnow(),
        )
        self.db.add(event)
        self.db.flush()
        return event

    def find_latest_of_kind(
        self,
        campaign_id: int,
        contact_id: int,
        kind: EventKind,
        for_update: bool = False,
    ) -> Optional[Event]:
        """Most recent event of one kind for a contact in a campaign.

        Args:
            campaign_id: Campaign ID.
            contact_id: External contact ID.
            kind: Event kind.
            for_update: Use a locking read, which sees rows committed by
                concurrent transactions instead of the transaction snapshot.
        """
        query = (
            self.db.query(Event)
            .filter(
                Event.campaign_id == campaign_id,
                Event.contact_id == contact_id,
                Event.event_kind == EventKind(kind).value,
            )
            .order_by(Event.created_at.desc(), Event.id.desc())
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def list_for_contact(self, campaign_id: int, contact_id: int) -> list[Event]:
        """All events for a contact in a campaign, oldest first."""
        return (
            self.db.query(Event)
            .filter(Event.campaign_id == campaign_id, Event.contact_id == contact_id)
            .order_by(Event.created_at.asc(), Event.id.asc())
            .all()
        )

    def list_for_campaign(
        self,
        campaign_id: int,
        kind: Optional[EventKind] = None,
        limit: Optional[int] = None,
    ) -> list[Event]:
        """Events of a campaign, newest first.

        Args:
            campaign_id: Campaign ID.
            kind: Optional kind filter.
            limit: Optional maximum number of events.

        Returns:
            List of events.
        """
        query = self.db.query(Event).filter(Event.campaign_id == campaign_id)
        if kind is not None:
            query = query.filter(Event.event_kind == EventKind(kind).value)
        query = query.order_by(Event.created_at.desc(), Event.id.desc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def earliest_timestamp(self, campaign_id: int) -> Optional[datetime]:
        """Earliest of any event timestamp recorded for a campaign."""
        row = (
            self.db.query(
                func.min(Event.created_at),
                func.min(Event.invited_at),
                func.min(Event.connected_at),
                func.min(Event.replied_at),
            )
            .filter(Event.campaign_id == campaign_id)
            .one()
        )
        candidates = [value for value in row if value is not None]
        if not candidates:
            return None
        return min(candidates)

    def correct_contact_progress(
        self,
        campaign_id: int,
        contact_id: int,
        invited: Optional[ProgressCorrection] = None,
        connected: Optional[ProgressCorrection] = None,
        replied: Optional[ProgressCorrection] = None,
    ) -> list[Event]:
        """Apply an operator correction to a contact's progression timestamps.

        A checked stage sets the typed timestamp on the latest event of that
        kind, appending a manual event when there is none. An unchecked stage
        clears the timestamp on every event of that kind; unchecking the reply
        also clears a ``Replied`` conversation status.

        Args:
            campaign_id: Campaign ID.
            contact_id: External contact ID.
            invited: Correction for the invite stage.
            connected: Correction for the connection stage.
            replied: Correction for the reply stage.

        Returns:
            The events that were updated or created.

        Raises:
            ValueError: If no stage is given.
        """
        stages = [
            (EventKind.INVITE_SENT, invited),
            (EventKind.CONNECTION_ACCEPTED, connected),
            (EventKind.CONTACT_REPLIED, replied),
        ]
        if all(correction is None for _, correction in stages):
            raise ValueError("at least one of invited, connected or replied is required")

        touched = []
        for kind, correction in stages:
            if correction is None:
                continue

            field = KIND_TIMESTAMP_FIELD[kind]
            if correction.checked:
                value = to_naive_utc(correction.at) if correction.at else utcnow()
                event = self.find_latest_of_kind(campaign_id, contact_id, kind)
                if event is None:
                    event = self.append(
                        campaign_id,
                        contact_id,
                        kind,
                        dict(MANUAL_SOURCE_PAYLOAD),
                        **{field: value},
                    )
                else:
                    setattr(event, field, value)
                if kind == EventKind.CONTACT_REPLIED:
                    event.conversation_status = REPLIED_CONVERSATION_STATUS
                touched.append(event)
                continue

            # Unchecking clears the stage on every event that carries it
            for event in self.list_for_contact(campaign_id, contact_id):
                changed = False
                if event.event_kind == kind.value and getattr(event, field) is not None:
                    setattr(event, field, None)
                    changed = True
                if (
                    kind == EventKind.CONTACT_REPLIED
                    and event.conversation_status == REPLIED_CONVERSATION_STATUS
                ):
                    event.conversation_status = None
                    changed = True
                if changed and event not in touched:
                    touched.append(event)

        self.db.flush()
        return touched

    def recent_activity(self, limit: int = 20) -> list[dict[str, Any]]:
        """Newest events with their campaign and account names."""
        rows = (
            self.db.query(Event, Campaign.campaign_name, Account.display_name)
            .join(Campaign, Event.campaign_id == Campaign.id)
            .join(Account, Campaign.account_id == Account.id)
            .order_by(Event.created_at.desc(), Event.id.desc())
            .limit(limit)
            .all()
        )
        return [
            {
                "event_id": event.id,
                "event_kind": event.event_kind,
                "campaign_id": event.campaign_id,
                "campaign_name": campaign_name,
                "account_name": account_name,
                "contact_id": event.contact_id,
                "created_at": event.created_at,
            }
            for event, campaign_name, account_name in rows
        ]
