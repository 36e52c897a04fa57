"""Domain models for Outreach Ledger.

This module defines the SQLAlchemy ORM models for the account hierarchy
(tenant -> account -> campaign -> contact), the append-only event log, and
the failure records written when a webhook delivery is abandoned.
"""

from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    """Naive UTC now, the representation every timestamp column uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# =============================================================================
# ENUMS
# =============================================================================


class AccountStatus(str):
    """Account assignment status values."""

    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"


class EventKind(str, PyEnum):
    """Internal event kinds; every raw webhook event string maps to one."""

    INVITE_SENT = "invite_sent"
    CONNECTION_ACCEPTED = "connection_accepted"
    CONTACT_REPLIED = "contact_replied"
    UNKNOWN = "unknown"


class ProgressionStatus(str, PyEnum):
    """Derived per-contact progression labels, in increasing order."""

    NOT_INVITED = "Not Invited"
    PENDING_CONNECTION = "Pending Connection"
    AWAITING_REPLY = "Awaiting Reply"
    REPLIED = "Replied"


class Severity(str):
    """Failure severity values."""

    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"


class NotificationType(str):
    """Operator notification types."""

    WEBHOOK_FAILED = "webhook_failed"
    SYSTEM_ERROR = "system_error"


# Conversation status label that marks a reply on imported history
REPLIED_CONVERSATION_STATUS = "Replied"


# =============================================================================
# MODELS
# =============================================================================


class Tenant(Base):
    """Client organisation that owns accounts."""

    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    # Relationships
    accounts: Mapped[list["Account"]] = relationship(back_populates="tenant")


class Account(Base):
    """Automation seat; webhook calls are routed to it by ``routing_key``."""

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tenant_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True
    )
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # Automation tool's own account id, informational only
    external_account_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    routing_key: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        Enum("assigned", "unassigned", name="account_status_enum"),
        nullable=False,
        default=AccountStatus.UNASSIGNED,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("routing_key", name="uq_account_routing_key"),
        Index("idx_account_tenant", "tenant_id"),
        Index("idx_account_status", "status"),
    )

    # Relationships
    tenant: Mapped[Optional["Tenant"]] = relationship(back_populates="accounts")
    campaigns: Mapped[list["Campaign"]] = relationship(
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Campaign(Base):
    """One outreach run under an account, keyed by the tool's instance token."""

    __tablename__ = "campaigns"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    instance_token: Mapped[str] = mapped_column(String(255), nullable=False)
    campaign_name: Mapped[str] = mapped_column(String(255), nullable=False)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("instance_token", name="uq_campaign_instance_token"),
        Index("idx_campaign_account_name", "account_id", "campaign_name"),
    )

    # Relationships
    account: Mapped["Account"] = relationship(back_populates="campaigns")
    contacts: Mapped[list["Contact"]] = relationship(
        back_populates="campaign",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    events: Mapped[list["Event"]] = relationship(
        back_populates="campaign",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Contact(Base):
    """One recipient within one campaign.

    The same person has one row per campaign. ``linked_to_contact_id`` and
    ``linked_to_campaign_id`` together hold the key of an earlier row
    believed to be the same person (see the contact linker).
    """

    __tablename__ = "contacts"

    contact_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    campaign_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("campaigns.id", ondelete="CASCADE"),
        primary_key=True,
        autoincrement=False,
    )
    first_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    job_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    profile_link: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    linked_to_contact_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    linked_to_campaign_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("idx_contact_campaign", "campaign_id"),
        Index("idx_contact_linked", "linked_to_contact_id", "linked_to_campaign_id"),
        Index("idx_contact_email", "email"),
        Index("idx_contact_profile_link", "profile_link"),
    )

    # Relationships
    campaign: Mapped["Campaign"] = relationship(back_populates="contacts")


class Event(Base):
    """Append-only fact about one contact's progression in one campaign.

    Normal ingestion sets at most one of the typed timestamps; the raw
    payload is kept for audit.
    """

    __tablename__ = "events"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    campaign_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False
    )
    contact_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    event_kind: Mapped[str] = mapped_column(
        Enum(
            "invite_sent",
            "connection_accepted",
            "contact_replied",
            "unknown",
            name="event_kind_enum",
        ),
        nullable=False,
    )
    payload: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    invited_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    connected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    replied_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    conversation_status: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_event_campaign_contact", "campaign_id", "contact_id"),
        Index("idx_event_contact", "contact_id"),
        Index("idx_event_kind", "event_kind"),
        Index("idx_event_invited_at", "invited_at"),
        Index("idx_event_connected_at", "connected_at"),
        Index("idx_event_replied_at", "replied_at"),
    )

    # Relationships
    campaign: Mapped["Campaign"] = relationship(back_populates="events")


class FailedWebhookArchive(Base):
    """Original payload of a delivery that exhausted its attempt budget."""

    __tablename__ = "failed_webhook_archive"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    routing_key: Mapped[str] = mapped_column(String(64), nullable=False)
    raw_payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    contact_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    instance_token: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    correlation_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    severity: Mapped[str] = mapped_column(
        Enum("critical", "error", "warning", name="archive_severity_enum"),
        nullable=False,
        default=Severity.ERROR,
    )
    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    failed_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_archive_routing_key", "routing_key"),
        Index("idx_archive_failed_at", "failed_at"),
        Index("idx_archive_correlation", "correlation_id"),
        Index("idx_archive_severity", "severity"),
    )


class ErrorNotification(Base):
    """Operator-facing notice raised alongside an archived failure."""

    __tablename__ = "error_notifications"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    notification_type: Mapped[str] = mapped_column(String(32), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    routing_key: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    correlation_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    severity: Mapped[str] = mapped_column(
        Enum("critical", "error", "warning", name="notification_severity_enum"),
        nullable=False,
        default=Severity.ERROR,
    )
    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_notification_resolved", "resolved"),
        Index("idx_notification_created_at", "created_at"),
        Index("idx_notification_severity", "severity"),
    )
