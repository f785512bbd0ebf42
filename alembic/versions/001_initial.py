"""Initial schema: request/signup event logs, plans, usage counters and audit tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "ip_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ip_address", sa.String(255), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("user_agent", sa.String(), nullable=True),
    )
    op.create_index("ix_ip_logs_id", "ip_logs", ["id"])
    op.create_index("ix_ip_logs_timestamp", "ip_logs", ["timestamp"])
    op.create_index("ix_ip_logs_ip_address_timestamp", "ip_logs", ["ip_address", "timestamp"])

    op.create_table(
        "account_signups",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("ip_address", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("email_domain", sa.String(255), nullable=True),
        sa.Column("user_agent", sa.String(), nullable=True),
        sa.Column("blocked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("block_reason", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_account_signups_id", "account_signups", ["id"])
    op.create_index("ix_account_signups_user_id", "account_signups", ["user_id"])
    op.create_index("ix_account_signups_email_domain", "account_signups", ["email_domain"])
    op.create_index(
        "ix_account_signups_ip_address_created_at", "account_signups", ["ip_address", "created_at"]
    )

    op.create_table(
        "blocked_email_domains",
        sa.Column("domain", sa.String(255), primary_key=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "user_plans",
        sa.Column("user_id", sa.String(), primary_key=True),
        sa.Column("plan_type", sa.String(), nullable=False, server_default="free"),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("last_scan_at", sa.DateTime(), nullable=True),
        sa.Column("stripe_customer_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "daily_usage",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("usage_date", sa.Date(), nullable=False),
        sa.Column("analysis_count", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("user_id", "usage_date", name="uq_daily_usage_user_date"),
    )
    op.create_index("ix_daily_usage_id", "daily_usage", ["id"])
    op.create_index("ix_daily_usage_user_id", "daily_usage", ["user_id"])

    op.create_table(
        "scan_usage",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("ip_address", sa.String(255), nullable=True),
        sa.Column("used_free_scan", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_scan_usage_id", "scan_usage", ["id"])
    op.create_index("ix_scan_usage_user_id", "scan_usage", ["user_id"], unique=True)

    op.create_table(
        "usage_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("ip_address", sa.String(255), nullable=False),
        sa.Column("video_type", sa.String(), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("verdict", sa.String(), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_usage_logs_id", "usage_logs", ["id"])
    op.create_index("ix_usage_logs_user_id", "usage_logs", ["user_id"])
    op.create_index("ix_usage_logs_ip_address", "usage_logs", ["ip_address"])
    op.create_index("ix_usage_logs_timestamp", "usage_logs", ["timestamp"])

    op.create_table(
        "analyses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("video_name", sa.String(), nullable=True),
        sa.Column("verdict", sa.String(), nullable=True),
        sa.Column("confidence", sa.String(), nullable=True),
        sa.Column("reasoning", sa.String(), nullable=True),
        sa.Column("raw_result", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_analyses_id", "analyses", ["id"])
    op.create_index("ix_analyses_user_id", "analyses", ["user_id"])
    op.create_index("ix_analyses_created_at", "analyses", ["created_at"])


def downgrade() -> None:
    for table in (
        "analyses",
        "usage_logs",
        "scan_usage",
        "daily_usage",
        "user_plans",
        "blocked_email_domains",
        "account_signups",
        "ip_logs",
    ):
        op.drop_table(table)
