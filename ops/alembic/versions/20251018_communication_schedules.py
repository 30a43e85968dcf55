"""Create communication_schedules table

Revision ID: 20251018_communication_schedules
Revises:
Create Date: 2025-10-18 09:00:00
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20251018_communication_schedules"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "communication_schedules",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("schedule_name", sa.String(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("module", sa.String(), nullable=False),
        sa.Column("communication_type", sa.String(), nullable=False),
        sa.Column("trigger_type", sa.String(), nullable=False),
        sa.Column("scheduled_date_time", sa.TIMESTAMP(timezone=True)),
        sa.Column("days_offset", sa.Integer()),
        sa.Column("filter_condition", sa.Text()),
        sa.Column("script_id", sa.String()),
        sa.Column("email_template_id", sa.String()),
        sa.Column("message", sa.Text()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_run_at", sa.TIMESTAMP(timezone=True)),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "communication_type IN ('email', 'whatsapp', 'call')",
            name="ck_communication_schedules_communication_type",
        ),
        sa.CheckConstraint(
            "trigger_type IN ('specific_datetime', 'days_before_due', 'days_after_due')",
            name="ck_communication_schedules_trigger_type",
        ),
        sa.CheckConstraint(
            "days_offset IS NULL OR days_offset >= 0",
            name="ck_communication_schedules_days_offset",
        ),
    )

    op.create_index(
        "ix_communication_schedules_is_active",
        "communication_schedules",
        ["is_active"],
    )
    op.create_index(
        "ix_communication_schedules_tenant_id",
        "communication_schedules",
        ["tenant_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_communication_schedules_tenant_id", table_name="communication_schedules")
    op.drop_index("ix_communication_schedules_is_active", table_name="communication_schedules")
    op.drop_table("communication_schedules")
