"""
starledger.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- members             — Community member identities (external id PK)
- star_transactions   — Append-only STAR ledger
- bd_transactions     — Append-only Black Dollar ledger
- xp_transactions     — Append-only XP ledger
- share_events        — Raw share submissions with an ``awarded`` marker
- video_reviews       — Review submissions awaiting admin approval
- reward_rules        — (category, trigger) → (xp, stars) lookup table
- activity_events     — Raw fitness / study / language actions
- ai_metrics          — Opaque AI scores per member and metric type
- votes               — Contest votes
- monthly_free_votes  — Per-member monthly free vote allowance
- admin_log           — Append-only audit trail

Balances are never stored as mutable counters.  ``members.star_total``
and ``members.star_rank`` are a cache refreshed from the STAR ledger.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all StarLedger ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Currency(enum.StrEnum):
    """Ledger currencies.  Each has its own transaction table."""
    STAR = "STAR"
    BD = "BD"
    XP = "XP"


class MemberRole(enum.StrEnum):
    USER = "user"
    ADMIN = "admin"


class ReviewStatus(enum.StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SharePlatform(enum.StrEnum):
    FACEBOOK = "facebook"
    TIKTOK = "tiktok"
    INSTAGRAM = "instagram"
    X = "x"
    OTHER = "other"


class VotePayment(enum.StrEnum):
    FREE = "free"
    STARS = "stars"


class AdminActionType(enum.StrEnum):
    """Categories of admin mutations recorded in admin_log."""
    ISSUE_CURRENCY = "ISSUE_CURRENCY"
    APPROVE_REVIEW = "APPROVE_REVIEW"
    REJECT_REVIEW = "REJECT_REVIEW"
    SET_ROLE = "SET_ROLE"


# ---------------------------------------------------------------------------
# Members — one row per external identity
# ---------------------------------------------------------------------------
class Member(Base):
    __tablename__ = "members"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    provider: Mapped[str] = mapped_column(String(30), nullable=False, default="google")
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    email: Mapped[str | None] = mapped_column(String(254), default=None)
    photo_url: Mapped[str | None] = mapped_column(String(500), default=None)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MemberRole.USER.value
    )

    # Cache of SUM(star_transactions.delta WHERE delta > 0); see ledger.refresh_rank_cache
    star_total: Mapped[int] = mapped_column(Integer, default=0)
    star_rank: Mapped[str] = mapped_column(String(30), default="Initiate")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    last_active_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    share_events: Mapped[list[ShareEvent]] = relationship(back_populates="member")

    __table_args__ = (
        Index("ix_members_role", "role"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == MemberRole.ADMIN.value

    def __repr__(self) -> str:
        return f"<Member id={self.id!r} role={self.role}>"


# ---------------------------------------------------------------------------
# Ledger tables — STAR, BD, XP share one immutable shape
# ---------------------------------------------------------------------------
class LedgerEntryMixin:
    """Columns shared by every currency's transaction table.

    Rows are appended exactly once per award decision and never updated
    or deleted.  The balance for (member, currency) is ``SUM(delta)``.
    """

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    member_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("members.id"), nullable=False
    )
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    @declared_attr.directive
    def __table_args__(cls) -> tuple:
        return (
            Index(f"ix_{cls.__tablename__}_member_time", "member_id", "created_at"),
            Index(f"ix_{cls.__tablename__}_reason", "reason"),
        )

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} id={self.id} member={self.member_id!r} "
            f"delta={self.delta}>"
        )


class StarTransaction(LedgerEntryMixin, Base):
    __tablename__ = "star_transactions"


class BdTransaction(LedgerEntryMixin, Base):
    __tablename__ = "bd_transactions"


class XpTransaction(LedgerEntryMixin, Base):
    __tablename__ = "xp_transactions"


LEDGER_MODELS: dict[Currency, type[LedgerEntryMixin]] = {
    Currency.STAR: StarTransaction,
    Currency.BD: BdTransaction,
    Currency.XP: XpTransaction,
}


# ---------------------------------------------------------------------------
# ShareEvent — raw share submissions
# ---------------------------------------------------------------------------
class ShareEvent(Base):
    """One social share.  ``awarded`` flips False → True exactly once,
    and only the reconciliation pass flips it."""
    __tablename__ = "share_events"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    member_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("members.id"), nullable=False
    )
    platform: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SharePlatform.OTHER.value
    )
    share_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    proof_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    awarded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    awarded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    member: Mapped[Member] = relationship(back_populates="share_events")

    __table_args__ = (
        Index(
            "ix_share_events_unawarded",
            "member_id", "created_at", "id",
            postgresql_where=awarded.is_(False),
        ),
        Index("ix_share_events_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ShareEvent id={self.id} member={self.member_id!r} "
            f"awarded={self.awarded}>"
        )


# ---------------------------------------------------------------------------
# VideoReview — business review submissions
# ---------------------------------------------------------------------------
class VideoReview(Base):
    __tablename__ = "video_reviews"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    member_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("members.id"), nullable=False
    )
    business_name: Mapped[str] = mapped_column(String(200), nullable=False)
    business_address: Mapped[str] = mapped_column(String(300), nullable=False)
    service_type: Mapped[str] = mapped_column(String(100), nullable=False)
    what_makes_special: Mapped[str] = mapped_column(Text, nullable=False)
    video_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    checklist: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    self_score: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReviewStatus.PENDING.value
    )
    reviewed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_video_reviews_status_time", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<VideoReview id={self.id} member={self.member_id!r} status={self.status}>"


# ---------------------------------------------------------------------------
# RewardRule — static (category, trigger) → (xp, stars) mapping
# ---------------------------------------------------------------------------
class RewardRule(Base):
    __tablename__ = "reward_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    trigger: Mapped[str] = mapped_column(String(80), nullable=False)
    xp_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    star_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str | None] = mapped_column(Text, default=None)

    __table_args__ = (
        UniqueConstraint("category", "trigger", name="uq_reward_rules_category_trigger"),
    )

    def __repr__(self) -> str:
        return (
            f"<RewardRule {self.category}:{self.trigger} "
            f"xp={self.xp_value} stars={self.star_value}>"
        )


# ---------------------------------------------------------------------------
# ActivityEvent — raw fitness / study / language actions
# ---------------------------------------------------------------------------
class ActivityEvent(Base):
    __tablename__ = "activity_events"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    member_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("members.id"), nullable=False
    )
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    kind: Mapped[str] = mapped_column(String(80), nullable=False)
    details: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_activity_events_member_time", "member_id", "created_at"),
        Index("ix_activity_events_category_kind", "category", "kind"),
    )

    def __repr__(self) -> str:
        return f"<ActivityEvent id={self.id} {self.category}:{self.kind}>"


# ---------------------------------------------------------------------------
# AiMetric — opaque scores from the AI pipelines
# ---------------------------------------------------------------------------
class AiMetric(Base):
    __tablename__ = "ai_metrics"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    member_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("members.id"), nullable=False
    )
    metric_type: Mapped[str] = mapped_column(String(30), nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_ai_metrics_member_type", "member_id", "metric_type"),
    )

    def __repr__(self) -> str:
        return f"<AiMetric id={self.id} type={self.metric_type} score={self.score}>"


# ---------------------------------------------------------------------------
# Voting — contest votes and the monthly free allowance
# ---------------------------------------------------------------------------
class Vote(Base):
    __tablename__ = "votes"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    member_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("members.id"), nullable=False
    )
    contest_id: Mapped[str] = mapped_column(String(100), nullable=False)
    contestant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    votes: Mapped[int] = mapped_column(Integer, nullable=False)
    pay_with: Mapped[str] = mapped_column(String(10), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_votes_contest_contestant", "contest_id", "contestant_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Vote id={self.id} contest={self.contest_id!r} "
            f"contestant={self.contestant_id!r} votes={self.votes}>"
        )


class MonthlyFreeVote(Base):
    __tablename__ = "monthly_free_votes"

    member_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("members.id"), primary_key=True
    )
    month_key: Mapped[str] = mapped_column(String(7), primary_key=True)  # YYYY-MM
    free_votes_remaining: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return (
            f"<MonthlyFreeVote member={self.member_id!r} month={self.month_key} "
            f"remaining={self.free_votes_remaining}>"
        )


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id!r} action={self.action_type}>"
