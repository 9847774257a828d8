"""create push engine tables

Revision ID: 3f9a1c2d7e40
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f9a1c2d7e40"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

device_type = sa.Enum("ios", "android", "web", name="devicetype")
notification_kind = sa.Enum("single", "multiple", "broadcast", name="notificationkind")
delivery_status = sa.Enum("pending", "sent", "failed", "partial", name="deliverystatus")
broadcast_status = sa.Enum(
    "scheduled", "processing", "completed", "failed", name="broadcaststatus"
)
digest_frequency = sa.Enum("immediate", "batched", "daily_digest", name="digestfrequency")


def timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            index=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "device_endpoints",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.String(64), nullable=False, index=True),
        sa.Column("token", sa.String(512), nullable=False, unique=True, index=True),
        sa.Column("device_id", sa.String(255), nullable=False),
        sa.Column("device_type", device_type, nullable=False),
        sa.Column("app_version", sa.String(50), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true(), index=True),
        sa.Column(
            "last_used_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        *timestamps(),
    )
    op.create_index("ix_device_endpoints_user_device", "device_endpoints", ["user_id", "device_id"])
    op.create_index("ix_device_endpoints_user_active", "device_endpoints", ["user_id", "is_active"])

    op.create_table(
        "notification_records",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("recipient_user_id", sa.String(64), nullable=False, index=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("kind", notification_kind, nullable=False),
        sa.Column("status", delivery_status, nullable=False, server_default="pending"),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_endpoints", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("success_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failure_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("invalid_tokens", sa.JSON(), nullable=False),
        sa.Column("provider_response", sa.JSON(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        *timestamps(),
    )
    op.create_index(
        "ix_notification_records_user_created",
        "notification_records",
        ["recipient_user_id", "created_at"],
    )
    op.create_index(
        "ix_notification_records_status_created", "notification_records", ["status", "created_at"]
    )
    op.create_index(
        "ix_notification_records_kind_created", "notification_records", ["kind", "created_at"]
    )

    op.create_table(
        "broadcasts",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("target_user_ids", sa.JSON(), nullable=True),
        sa.Column("target_device_types", sa.JSON(), nullable=True),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column(
            "status", broadcast_status, nullable=False, server_default="scheduled", index=True
        ),
        sa.Column("total_targeted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_sent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        *timestamps(),
    )

    op.create_table(
        "notification_preferences",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.String(64), nullable=False, unique=True, index=True),
        sa.Column("global_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("categories", sa.JSON(), nullable=False),
        sa.Column(
            "quiet_hours_enabled", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("quiet_hours_start", sa.String(5), nullable=False, server_default="22:00"),
        sa.Column("quiet_hours_end", sa.String(5), nullable=False, server_default="08:00"),
        sa.Column("quiet_hours_timezone", sa.String(50), nullable=False, server_default="UTC"),
        sa.Column("frequency", digest_frequency, nullable=False, server_default="immediate"),
        *timestamps(),
    )


def downgrade() -> None:
    op.drop_table("notification_preferences")
    op.drop_table("broadcasts")
    op.drop_index("ix_notification_records_kind_created", table_name="notification_records")
    op.drop_index("ix_notification_records_status_created", table_name="notification_records")
    op.drop_index("ix_notification_records_user_created", table_name="notification_records")
    op.drop_table("notification_records")
    op.drop_index("ix_device_endpoints_user_active", table_name="device_endpoints")
    op.drop_index("ix_device_endpoints_user_device", table_name="device_endpoints")
    op.drop_table("device_endpoints")

    bind = op.get_bind()
    for enum in (
        digest_frequency,
        broadcast_status,
        delivery_status,
        notification_kind,
        device_type,
    ):
        enum.drop(bind, checkfirst=True)
