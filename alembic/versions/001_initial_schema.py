"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-16

Creates all tables for the outreach ledger:
- tenants
- accounts (routing key per account)
- campaigns (unique instance token)
- contacts (keyed on contact id + campaign id)
- events (append-only log)
- failed_webhook_archive
- error_notifications
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Tenants table
    op.create_table(
        "tenants",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(128), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    # Accounts table
    op.create_table(
        "accounts",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.BigInteger, nullable=True),
        sa.Column("display_name", sa.String(128), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("external_account_id", sa.BigInteger, nullable=True),
        sa.Column("routing_key", sa.String(64), nullable=False),
        sa.Column(
            "status",
            sa.Enum("assigned", "unassigned", name="account_status_enum"),
            nullable=False,
            server_default="unassigned",
        ),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ["tenant_id"], ["tenants.id"], name="fk_account_tenant", ondelete="SET NULL"
        ),
        sa.UniqueConstraint("routing_key", name="uq_account_routing_key"),
    )
    op.create_index("idx_account_tenant", "accounts", ["tenant_id"])
    op.create_index("idx_account_status", "accounts", ["status"])

    # Campaigns table
    op.create_table(
        "campaigns",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.BigInteger, nullable=False),
        sa.Column("instance_token", sa.String(255), nullable=False),
        sa.Column("campaign_name", sa.String(255), nullable=False),
        sa.Column("started_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ["account_id"], ["accounts.id"], name="fk_campaign_account", ondelete="CASCADE"
        ),
        sa.UniqueConstraint("instance_token", name="uq_campaign_instance_token"),
    )
    op.create_index("idx_campaign_account_name", "campaigns", ["account_id", "campaign_name"])

    # Contacts table
    op.create_table(
        "contacts",
        sa.Column("contact_id", sa.BigInteger, nullable=False),
        sa.Column("campaign_id", sa.BigInteger, nullable=False),
        sa.Column("first_name", sa.String(255), nullable=True),
        sa.Column("last_name", sa.String(255), nullable=True),
        sa.Column("company_name", sa.String(255), nullable=True),
        sa.Column("job_title", sa.String(255), nullable=True),
        sa.Column("profile_link", sa.String(512), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("linked_to_contact_id", sa.BigInteger, nullable=True),
        sa.Column("linked_to_campaign_id", sa.BigInteger, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("contact_id", "campaign_id", name="pk_contacts"),
        sa.ForeignKeyConstraint(
            ["campaign_id"], ["campaigns.id"], name="fk_contact_campaign", ondelete="CASCADE"
        ),
    )
    op.create_index("idx_contact_campaign", "contacts", ["campaign_id"])
    op.create_index(
        "idx_contact_linked", "contacts", ["linked_to_contact_id", "linked_to_campaign_id"]
    )
    op.create_index("idx_contact_email", "contacts", ["email"])
    op.create_index("idx_contact_profile_link", "contacts", ["profile_link"])

    # Events table
    op.create_table(
        "events",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("campaign_id", sa.BigInteger, nullable=False),
        sa.Column("contact_id", sa.BigInteger, nullable=False),
        sa.Column(
            "event_kind",
            sa.Enum(
                "invite_sent",
                "connection_accepted",
                "contact_replied",
                "unknown",
                name="event_kind_enum",
            ),
            nullable=False,
        ),
        sa.Column("payload", sa.JSON, nullable=True),
        sa.Column("invited_at", sa.DateTime, nullable=True),
        sa.Column("connected_at", sa.DateTime, nullable=True),
        sa.Column("replied_at", sa.DateTime, nullable=True),
        sa.Column("conversation_status", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ["campaign_id"], ["campaigns.id"], name="fk_event_campaign", ondelete="CASCADE"
        ),
    )
    op.create_index("idx_event_campaign_contact", "events", ["campaign_id", "contact_id"])
    op.create_index("idx_event_contact", "events", ["contact_id"])
    op.create_index("idx_event_kind", "events", ["event_kind"])
    op.create_index("idx_event_invited_at", "events", ["invited_at"])
    op.create_index("idx_event_connected_at", "events", ["connected_at"])
    op.create_index("idx_event_replied_at", "events", ["replied_at"])

    # Failed webhook archive table
    op.create_table(
        "failed_webhook_archive",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("routing_key", sa.String(64), nullable=False),
        sa.Column("raw_payload", sa.JSON, nullable=False),
        sa.Column("error_message", sa.Text, nullable=False),
        sa.Column("retry_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("contact_id", sa.BigInteger, nullable=True),
        sa.Column("instance_token", sa.String(255), nullable=True),
        sa.Column("correlation_id", sa.String(36), nullable=True),
        sa.Column(
            "severity",
            sa.Enum("critical", "error", "warning", name="archive_severity_enum"),
            nullable=False,
            server_default="error",
        ),
        sa.Column("resolved", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("failed_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_archive_routing_key", "failed_webhook_archive", ["routing_key"])
    op.create_index("idx_archive_failed_at", "failed_webhook_archive", ["failed_at"])
    op.create_index("idx_archive_correlation", "failed_webhook_archive", ["correlation_id"])
    op.create_index("idx_archive_severity", "failed_webhook_archive", ["severity"])

    # Error notifications table
    op.create_table(
        "error_notifications",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("notification_type", sa.String(32), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("routing_key", sa.String(64), nullable=True),
        sa.Column("correlation_id", sa.String(36), nullable=True),
        sa.Column(
            "severity",
            sa.Enum("critical", "error", "warning", name="notification_severity_enum"),
            nullable=False,
            server_default="error",
        ),
        sa.Column("resolved", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_notification_resolved", "error_notifications", ["resolved"])
    op.create_index("idx_notification_created_at", "error_notifications", ["created_at"])
    op.create_index("idx_notification_severity", "error_notifications", ["severity"])


def downgrade() -> None:
    op.drop_table("error_notifications")
    op.drop_table("failed_webhook_archive")
    op.drop_table("events")
    op.drop_table("contacts")
    op.drop_table("campaigns")
    op.drop_table("accounts")
    op.drop_table("tenants")
