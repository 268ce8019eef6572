"""create_time_tracking_tables

Revision ID: 3c1f9a27d4e0
Revises:
Create Date: 2026-10-19 09:12:40.215873

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3c1f9a27d4e0'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "time_entries",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("created_by_id", sa.String(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("is_running", sa.Boolean(), nullable=False),
        sa.Column("client_id", sa.String(), nullable=True),
        sa.Column("task_id", sa.String(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("is_billable", sa.Boolean(), nullable=False),
        sa.Column("hourly_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by_id", sa.String(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_note", sa.Text(), nullable=True),
        sa.Column("rejected_by_id", sa.String(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_locked", sa.Boolean(), nullable=False),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by_id", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "duration_minutes IS NULL OR duration_minutes >= 0",
            name="ck_time_entries_duration_nonnegative",
        ),
        sa.CheckConstraint(
            "status IN ('DRAFT', 'SUBMITTED', 'APPROVED', 'REJECTED')",
            name="ck_time_entries_status",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_time_entries_company_id", "time_entries", ["company_id"])
    op.create_index("ix_time_entries_user_id", "time_entries", ["user_id"])
    op.create_index("ix_time_entries_client_id", "time_entries", ["client_id"])
    op.create_index("ix_time_entries_task_id", "time_entries", ["task_id"])
    op.create_index("ix_time_entries_status", "time_entries", ["status"])
    op.create_index(
        "ix_time_entries_company_user_start",
        "time_entries",
        ["company_id", "user_id", "start_time"],
    )
    op.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_time_entries_one_running_per_user
        ON time_entries(user_id, company_id)
        WHERE is_running AND is_active;
        """
    )

    op.create_table(
        "time_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("rounding_method", sa.String(), nullable=False),
        sa.Column("rounding_interval_minutes", sa.Integer(), nullable=False),
        sa.Column("allow_overlapping_entries", sa.Boolean(), nullable=False),
        sa.Column("lock_entries_after_days", sa.Integer(), nullable=False),
        sa.Column("default_hourly_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("default_currency", sa.String(length=3), nullable=False),
        sa.Column("updated_by_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_time_settings_company_id", "time_settings", ["company_id"], unique=True)

    op.create_table(
        "change_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("changes", sa.JSON().with_variant(postgresql.JSONB(), "postgresql"), nullable=False),
        sa.Column("changed_by_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_change_logs_company_id", "change_logs", ["company_id"])
    op.create_index("ix_change_logs_entity", "change_logs", ["entity_type", "entity_id"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_change_logs_entity", table_name="change_logs")
    op.drop_index("ix_change_logs_company_id", table_name="change_logs")
    op.drop_table("change_logs")

    op.drop_index("ix_time_settings_company_id", table_name="time_settings")
    op.drop_table("time_settings")

    op.execute("DROP INDEX IF EXISTS uq_time_entries_one_running_per_user;")
    op.drop_index("ix_time_entries_company_user_start", table_name="time_entries")
    op.drop_index("ix_time_entries_status", table_name="time_entries")
    op.drop_index("ix_time_entries_task_id", table_name="time_entries")
    op.drop_index("ix_time_entries_client_id", table_name="time_entries")
    op.drop_index("ix_time_entries_user_id", table_name="time_entries")
    op.drop_index("ix_time_entries_company_id", table_name="time_entries")
    op.drop_table("time_entries")
