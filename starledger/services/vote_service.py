"""
starledger.services.vote_service — PAGT Contest Voting
=======================================================

A cast of 1..50 votes is paid for either from the member's monthly free
allowance or with STAR at a fixed price per vote.  Payment and the vote
row commit together; if the member cannot pay, nothing is written.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select

from starledger.constants import FREE_VOTES_PER_MONTH, MAX_VOTES_PER_CAST, STARS_PER_VOTE
from starledger.database.engine import get_session
from starledger.database.models import Currency, Member, MonthlyFreeVote, Vote, VotePayment
from starledger.errors import ValidationError
from starledger.services import ledger
from starledger.services.members import require_member, upsert_member

logger = logging.getLogger(__name__)


def current_month_key(now: datetime | None = None) -> str:
    """``YYYY-MM`` for *now* (UTC)."""
    return (now or datetime.now(UTC)).strftime("%Y-%m")


def vote_purchase_reason(votes: int) -> str:
    return f"PAGT vote purchase ({votes} votes @ {STARS_PER_VOTE} STAR each)"


# ---------------------------------------------------------------------------
# Casting
# ---------------------------------------------------------------------------
def cast_vote(
    engine: Engine,
    member_id: str,
    *,
    contest_id: str,
    contestant_id: str,
    votes: int,
    pay_with: VotePayment | str,
    now: datetime | None = None,
) -> dict:
    """Record *votes* for *contestant_id* and charge the member.

    Raises :class:`ValidationError` for out-of-range counts, unknown payment
    methods, or insufficient free votes / STAR.
    """
    try:
        pay_with = VotePayment(pay_with)
    except ValueError:
        raise ValidationError(f"Unknown payment method: {pay_with!r}") from None
    if not 1 <= votes <= MAX_VOTES_PER_CAST:
        raise ValidationError(f"votes must be between 1 and {MAX_VOTES_PER_CAST}")
    if not contest_id or not contestant_id:
        raise ValidationError("contest_id and contestant_id are required")

    key = current_month_key(now)

    with get_session(engine) as session:
        upsert_member(session, member_id)
        require_member(session, member_id, lock=True)

        if pay_with is VotePayment.FREE:
            allowance = session.scalar(
                select(MonthlyFreeVote)
                .where(
                    MonthlyFreeVote.member_id == member_id,
                    MonthlyFreeVote.month_key == key,
                )
                .with_for_update()
            )
            remaining = allowance.free_votes_remaining if allowance else 0
            if remaining < votes:
                raise ValidationError(f"Not enough free votes. Remaining: {remaining}")
            allowance.free_votes_remaining = remaining - votes
            cost = 0
        else:
            cost = votes * STARS_PER_VOTE
            balance = ledger.sum_balance(session, member_id, Currency.STAR)
            if balance < cost:
                raise ValidationError(
                    f"Not enough STARs. Need {cost}, have {balance}."
                )
            ledger.append_transaction(
                session, member_id, Currency.STAR, -cost, vote_purchase_reason(votes),
            )

        session.add(Vote(
            member_id=member_id,
            contest_id=contest_id,
            contestant_id=contestant_id,
            votes=votes,
            pay_with=pay_with.value,
        ))

    logger.info(
        "%s cast %d vote(s) for %s/%s (paid with %s)",
        member_id, votes, contest_id, contestant_id, pay_with.value,
    )
    return {
        "member_id": member_id,
        "contest_id": contest_id,
        "contestant_id": contestant_id,
        "votes": votes,
        "pay_with": pay_with.value,
        "star_cost": cost,
    }


def contest_tally(engine: Engine, contest_id: str) -> dict[str, int]:
    """Total votes per contestant for *contest_id*."""
    with get_session(engine) as session:
        rows = session.execute(
            select(Vote.contestant_id, func.sum(Vote.votes))
            .where(Vote.contest_id == contest_id)
            .group_by(Vote.contestant_id)
            .order_by(Vote.contestant_id)
        ).all()
    return {contestant: int(total) for contestant, total in rows}


# ---------------------------------------------------------------------------
# Monthly allowance job
# ---------------------------------------------------------------------------
def allocate_monthly_free_votes(engine: Engine, month_key: str | None = None) -> dict:
    """Give every member their free vote for *month_key* (default: this month).

    Existing allowances are left untouched, so the job may run any number
    of times in a month.
    """
    key = month_key or current_month_key()

    with get_session(engine) as session:
        have = set(session.scalars(
            select(MonthlyFreeVote.member_id).where(MonthlyFreeVote.month_key == key)
        ))
        allocated = 0
        for member_id in session.scalars(select(Member.id).order_by(Member.id)).all():
            if member_id in have:
                continue
            session.add(MonthlyFreeVote(
                member_id=member_id,
                month_key=key,
                free_votes_remaining=FREE_VOTES_PER_MONTH,
            ))
            allocated += 1

    logger.info("Monthly free votes %s: %d allocated", key, allocated)
    return {"month_key": key, "allocated": allocated}
