"""
starledger.services.admin_service — Admin Mutation Service Layer
=================================================================

Every admin write follows the same pattern:
  1. Begin transaction
  2. Read "before" snapshot
  3. Apply change
  4. Write admin_log with before/after JSONB
  5. Commit
  6. Best-effort notify

The audit helpers here are also used by :mod:`review_service` so that
review approvals land in the same trail.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from starledger.constants import ADMIN_GRANT_REASON
from starledger.database.engine import get_session
from starledger.database.models import (
    LEDGER_MODELS,
    ActivityEvent,
    AdminActionType,
    AdminLog,
    Currency,
    Member,
    MemberRole,
    ReviewStatus,
    ShareEvent,
    VideoReview,
)
from starledger.errors import ValidationError
from starledger.services import ledger
from starledger.services.members import require_member
from starledger.services.notifier import Notifier, notify_member

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic audit helpers
# ---------------------------------------------------------------------------

def row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key if col.key != "metadata" else "metadata_", None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


def log_admin_action(
    session: Session,
    *,
    actor_id: str,
    action_type: AdminActionType | str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=str(action_type),
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


# ---------------------------------------------------------------------------
# Currency issuance
# ---------------------------------------------------------------------------

def issue_currency(
    engine: Engine,
    *,
    admin_id: str,
    member_id: str,
    currency: Currency | str,
    amount: int,
    reason: str | None = None,
    notifier: Notifier | None = None,
) -> dict:
    """Append one admin-issued ledger row (STAR, BD or XP).

    Negative amounts are allowed as corrections; zero is rejected.
    Returns ``{"member_id", "currency", "amount", "balance"}``.
    """
    try:
        currency = Currency(currency)
    except ValueError:
        raise ValidationError(f"Unknown currency: {currency!r}") from None
    if amount == 0:
        raise ValidationError("amount must be non-zero")

    reason = (reason or "").strip() or ADMIN_GRANT_REASON

    with get_session(engine) as session:
        require_member(session, member_id, lock=True)
        before = ledger.sum_balance(session, member_id, currency)
        entry = ledger.append_transaction(session, member_id, currency, amount, reason)
        log_admin_action(
            session,
            actor_id=admin_id,
            action_type=AdminActionType.ISSUE_CURRENCY,
            target_table=entry.__tablename__,
            target_id=member_id,
            before={"currency": currency.value, "balance": before},
            after={"currency": currency.value, "balance": before + amount},
            reason=reason,
        )

    logger.info(
        "Admin %s issued %+d %s to %s (%s)",
        admin_id, amount, currency.value, member_id, reason,
    )
    notify_member(notifier, member_id, {
        "type": "admin_grant",
        "member_id": member_id,
        "currency": currency.value,
        "amount": amount,
        "reason": reason,
    })
    return {
        "member_id": member_id,
        "currency": currency.value,
        "amount": amount,
        "balance": before + amount,
    }


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

def set_member_role(
    engine: Engine,
    *,
    admin_id: str,
    member_id: str,
    role: MemberRole | str,
) -> Member:
    """Change a member's role.  The only code path that writes ``role``."""
    try:
        role = MemberRole(role)
    except ValueError:
        raise ValidationError(f"Unknown role: {role!r}") from None

    with get_session(engine) as session:
        member = require_member(session, member_id, lock=True)
        before = row_to_dict(member)
        member.role = role.value
        session.flush()
        log_admin_action(
            session,
            actor_id=admin_id,
            action_type=AdminActionType.SET_ROLE,
            target_table="members",
            target_id=member_id,
            before=before,
            after=row_to_dict(member),
        )
        session.commit()
        session.refresh(member)
        session.expunge(member)

    logger.info("Admin %s set role of %s to %s", admin_id, member_id, role.value)
    return member


# ---------------------------------------------------------------------------
# Dashboard reads
# ---------------------------------------------------------------------------

def get_overview(engine: Engine) -> dict:
    """Headline counts for the admin dashboard."""
    with get_session(engine) as session:
        members = session.scalar(select(func.count()).select_from(Member)) or 0
        pending_reviews = session.scalar(
            select(func.count())
            .select_from(VideoReview)
            .where(VideoReview.status == ReviewStatus.PENDING.value)
        ) or 0
        pending_shares = session.scalar(
            select(func.count())
            .select_from(ShareEvent)
            .where(ShareEvent.awarded.is_(False))
        ) or 0
        issued = {
            c.value: int(session.scalar(
                select(func.coalesce(func.sum(LEDGER_MODELS[c].delta), 0))
                .where(LEDGER_MODELS[c].delta > 0)
            ) or 0)
            for c in Currency
        }

    return {
        "members": members,
        "pending_reviews": pending_reviews,
        "pending_shares": pending_shares,
        "issued": issued,
    }


def activity_stream(engine: Engine, *, limit: int = 50) -> list[dict]:
    """Most recent activity events, newest first."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(ActivityEvent)
            .order_by(ActivityEvent.created_at.desc(), ActivityEvent.id.desc())
            .limit(limit)
        ).all()
        return [row_to_dict(row) for row in rows]


def recent_admin_actions(engine: Engine, *, limit: int = 50) -> list[dict]:
    """Most recent admin_log rows, newest first."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(AdminLog).order_by(AdminLog.id.desc()).limit(limit)
        ).all()
        return [row_to_dict(row) for row in rows]
