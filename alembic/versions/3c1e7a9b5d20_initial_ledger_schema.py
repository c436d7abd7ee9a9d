"""Initial ledger schema

Revision ID: 3c1e7a9b5d20
Revises:
Create Date: 2026-10-19 09:12:44.118203

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3c1e7a9b5d20'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

LEDGER_TABLES = ("star_transactions", "bd_transactions", "xp_transactions")


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=nullable,
    )


def upgrade() -> None:
    """Create members, the three ledgers, event tables, voting and audit."""

    # --- members ---
    op.create_table(
        "members",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("provider", sa.String(30), nullable=False, server_default="google"),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("email", sa.String(254), nullable=True),
        sa.Column("photo_url", sa.String(500), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("star_total", sa.Integer, nullable=True, server_default="0"),
        sa.Column("star_rank", sa.String(30), nullable=True, server_default="Initiate"),
        _timestamp("created_at", nullable=True),
        _timestamp("updated_at", nullable=True),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_members_role", "members", ["role"])

    # --- ledgers ---
    for table in LEDGER_TABLES:
        op.create_table(
            table,
            sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
            sa.Column("member_id", sa.String(128), sa.ForeignKey("members.id"), nullable=False),
            sa.Column("delta", sa.Integer, nullable=False),
            sa.Column("reason", sa.Text, nullable=False),
            _timestamp("created_at"),
        )
        op.create_index(f"ix_{table}_member_time", table, ["member_id", "created_at"])
        op.create_index(f"ix_{table}_reason", table, ["reason"])

    # --- share_events ---
    op.create_table(
        "share_events",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("member_id", sa.String(128), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("platform", sa.String(20), nullable=False, server_default="other"),
        sa.Column("share_url", sa.String(1000), nullable=True),
        sa.Column("proof_url", sa.String(1000), nullable=True),
        sa.Column("awarded", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("awarded_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index(
        "ix_share_events_unawarded",
        "share_events",
        ["member_id", "created_at", "id"],
        postgresql_where=sa.text("awarded IS false"),
    )
    op.create_index("ix_share_events_created_at", "share_events", ["created_at"])

    # --- video_reviews ---
    op.create_table(
        "video_reviews",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("member_id", sa.String(128), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("business_name", sa.String(200), nullable=False),
        sa.Column("business_address", sa.String(300), nullable=False),
        sa.Column("service_type", sa.String(100), nullable=False),
        sa.Column("what_makes_special", sa.Text, nullable=False),
        sa.Column("video_url", sa.String(1000), nullable=False),
        sa.Column("checklist", postgresql.JSONB, nullable=True),
        sa.Column("self_score", sa.Integer, nullable=True, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("reviewed_by", sa.String(128), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_video_reviews_status_time", "video_reviews", ["status", "created_at"])

    # --- reward_rules ---
    op.create_table(
        "reward_rules",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("trigger", sa.String(80), nullable=False),
        sa.Column("xp_value", sa.Integer, nullable=False, server_default="0"),
        sa.Column("star_value", sa.Integer, nullable=False, server_default="0"),
        sa.Column("description", sa.Text, nullable=True),
        sa.UniqueConstraint("category", "trigger", name="uq_reward_rules_category_trigger"),
    )

    # --- activity_events ---
    op.create_table(
        "activity_events",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("member_id", sa.String(128), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("kind", sa.String(80), nullable=False),
        sa.Column("details", postgresql.JSONB, nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_activity_events_member_time", "activity_events", ["member_id", "created_at"])
    op.create_index("ix_activity_events_category_kind", "activity_events", ["category", "kind"])

    # --- ai_metrics ---
    op.create_table(
        "ai_metrics",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("member_id", sa.String(128), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("metric_type", sa.String(30), nullable=False),
        sa.Column("score", sa.Float, nullable=False),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_ai_metrics_member_type", "ai_metrics", ["member_id", "metric_type"])

    # --- votes / monthly_free_votes ---
    op.create_table(
        "votes",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("member_id", sa.String(128), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("contest_id", sa.String(100), nullable=False),
        sa.Column("contestant_id", sa.String(100), nullable=False),
        sa.Column("votes", sa.Integer, nullable=False),
        sa.Column("pay_with", sa.String(10), nullable=False),
        _timestamp("created_at"),
    )
    op.create_index("ix_votes_contest_contestant", "votes", ["contest_id", "contestant_id"])

    op.create_table(
        "monthly_free_votes",
        sa.Column("member_id", sa.String(128), sa.ForeignKey("members.id"), primary_key=True),
        sa.Column("month_key", sa.String(7), primary_key=True),
        sa.Column("free_votes_remaining", sa.Integer, nullable=False, server_default="1"),
    )

    # --- admin_log ---
    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.String(128), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(128), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        _timestamp("timestamp", nullable=True),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index("ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"])


def downgrade() -> None:
    """Drop everything in reverse dependency order."""
    op.drop_table("admin_log")
    op.drop_table("monthly_free_votes")
    op.drop_table("votes")
    op.drop_table("ai_metrics")
    op.drop_table("activity_events")
    op.drop_table("reward_rules")
    op.drop_table("video_reviews")
    op.drop_index("ix_share_events_unawarded", table_name="share_events")
    op.drop_table("share_events")
    for table in reversed(LEDGER_TABLES):
        op.drop_table(table)
    op.drop_table("members")
