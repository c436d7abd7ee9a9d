"""
starledger.services.ledger — Ledger Append, Balances & Ranks
=============================================================

The ledger is the only source of truth for money.  Three append-only
tables (STAR, BD, XP) hold signed deltas; a balance is ``SUM(delta)``
and is recomputed on every read.

``members.star_total`` / ``members.star_rank`` are a cache for list
views.  :func:`refresh_rank_cache` rebuilds them from the STAR ledger and
may be run at any time; nothing reads the cache to make a decision.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from starledger.constants import rank_for_stars
from starledger.database.engine import get_session
from starledger.database.models import LEDGER_MODELS, Currency, LedgerEntryMixin, Member
from starledger.errors import ValidationError

logger = logging.getLogger(__name__)


def _model_for(currency: Currency | str) -> type[LedgerEntryMixin]:
    try:
        return LEDGER_MODELS[Currency(currency)]
    except ValueError:
        raise ValidationError(f"Unknown currency: {currency!r}") from None


# ---------------------------------------------------------------------------
# Append
# ---------------------------------------------------------------------------
def append_transaction(
    session: Session,
    member_id: str,
    currency: Currency | str,
    delta: int,
    reason: str,
) -> LedgerEntryMixin:
    """Add one immutable ledger row inside the caller's transaction.

    Zero deltas are rejected; callers skip the append instead of writing
    no-op rows.
    """
    if delta == 0:
        raise ValidationError("Ledger delta must be non-zero")
    if not reason:
        raise ValidationError("Ledger reason is required")

    model = _model_for(currency)
    entry = model(member_id=member_id, delta=int(delta), reason=reason)
    session.add(entry)
    session.flush()
    logger.debug(
        "Ledger %s %+d for %s (%s)", Currency(currency).value, delta, member_id, reason,
    )
    return entry


# ---------------------------------------------------------------------------
# Balances
# ---------------------------------------------------------------------------
def sum_balance(session: Session, member_id: str, currency: Currency | str) -> int:
    """``SUM(delta)`` for one member and currency (0 when no rows)."""
    model = _model_for(currency)
    return int(session.scalar(
        select(func.coalesce(func.sum(model.delta), 0))
        .where(model.member_id == member_id)
    ) or 0)


def lifetime_stars(session: Session, member_id: str) -> int:
    """Total STAR ever earned (positive deltas only).

    Spending STAR on votes lowers the balance but not the lifetime total,
    so a member's rank never drops because they voted.
    """
    model = LEDGER_MODELS[Currency.STAR]
    return int(session.scalar(
        select(func.coalesce(func.sum(model.delta), 0))
        .where(model.member_id == member_id, model.delta > 0)
    ) or 0)


def get_balance(engine: Engine, member_id: str, currency: Currency | str) -> int:
    """Current balance for *member_id* in *currency*.

    Reads never reject unknown members: a member with no rows has a zero
    balance (and the lowest tier, see :func:`get_rank`).
    """
    with get_session(engine) as session:
        return sum_balance(session, member_id, currency)


def get_balances(engine: Engine, member_id: str) -> dict[str, int]:
    """All three balances for *member_id*, keyed by currency code."""
    with get_session(engine) as session:
        return {c.value: sum_balance(session, member_id, c) for c in Currency}


def get_rank(engine: Engine, member_id: str) -> str:
    """Named tier for *member_id* from their lifetime STAR total.

    Unknown members rank like a member with no STAR.
    """
    with get_session(engine) as session:
        return rank_for_stars(lifetime_stars(session, member_id))


def list_transactions(
    engine: Engine,
    member_id: str,
    currency: Currency | str,
    *,
    limit: int = 50,
) -> list[dict]:
    """Most recent ledger rows for a member, newest first."""
    model = _model_for(currency)
    with get_session(engine) as session:
        rows = session.scalars(
            select(model)
            .where(model.member_id == member_id)
            .order_by(model.created_at.desc(), model.id.desc())
            .limit(limit)
        ).all()
        return [
            {
                "id": row.id,
                "currency": Currency(currency).value,
                "delta": row.delta,
                "reason": row.reason,
                "created_at": row.created_at.isoformat() if row.created_at else None,
            }
            for row in rows
        ]


# ---------------------------------------------------------------------------
# Rank cache refresh
# ---------------------------------------------------------------------------
def refresh_rank_cache(engine: Engine) -> dict:
    """Rebuild ``star_total`` / ``star_rank`` for every member from the ledger.

    Returns ``{"checked": N, "updated": M, "timestamp": ...}``.
    """
    star = LEDGER_MODELS[Currency.STAR]
    checked = 0
    updated = 0

    with get_session(engine) as session:
        earned = dict(session.execute(
            select(star.member_id, func.sum(star.delta))
            .where(star.delta > 0)
            .group_by(star.member_id)
        ).all())

        for member in session.scalars(select(Member).order_by(Member.id)):
            checked += 1
            total = int(earned.get(member.id) or 0)
            rank = rank_for_stars(total)
            if member.star_total != total or member.star_rank != rank:
                member.star_total = total
                member.star_rank = rank
                updated += 1

    logger.info("Rank refresh: %d/%d member caches updated", updated, checked)
    return {
        "checked": checked,
        "updated": updated,
        "timestamp": datetime.now(UTC).isoformat(),
    }
