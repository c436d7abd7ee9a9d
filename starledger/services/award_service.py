"""
starledger.services.award_service — Share-to-STAR Reconciliation
=================================================================

Scheduled pass that converts unconsumed share events into STAR credits
at a fixed rate (3 shares = 1 STAR), exactly once.

How it works:
    1. Count unconsumed shares per member (one grouped query).
    2. For each member with at least ``rate`` pending shares, open a
       **separate** transaction:
         a. lock the member row (``SELECT … FOR UPDATE``),
         b. re-count pending shares under the lock,
         c. append one STAR row with ``delta = count // rate``,
         d. mark ``delta * rate`` oldest shares consumed,
         e. commit.
       Any exception rolls back both the STAR row and the marking.
    3. After each commit, notify the member and broadcast to admins.
    4. A failed member is logged and skipped; their pending count is
       unchanged, so the next pass picks them up again.

Running the pass twice with no new shares in between is a no-op: every
member is left with fewer than ``rate`` pending shares.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import NamedTuple

from sqlalchemy import Engine

from starledger.constants import SHARE_AWARD_REASON
from starledger.database.engine import get_session
from starledger.database.models import Currency
from starledger.engine.conversion import compute_conversion
from starledger.services import event_log, ledger
from starledger.services.members import require_member
from starledger.services.notifier import Notifier, notify_admins, notify_member

logger = logging.getLogger(__name__)

DEFAULT_SHARES_PER_STAR = 3


class ShareAward(NamedTuple):
    """One committed conversion: ``(member_id, delta)``."""

    member_id: str
    delta: int


# ---------------------------------------------------------------------------
# Per-member transaction
# ---------------------------------------------------------------------------
def award_member(
    engine: Engine,
    member_id: str,
    *,
    rate: int = DEFAULT_SHARES_PER_STAR,
    reason: str = SHARE_AWARD_REASON,
) -> ShareAward | None:
    """Convert one member's pending shares in a single transaction.

    Returns the committed award, or ``None`` when the member has fewer
    than *rate* pending shares.  Exceptions propagate after rollback.
    """
    with get_session(engine) as session:
        require_member(session, member_id, lock=True)

        pending = event_log.count_unconsumed(session, member_id)
        result = compute_conversion(pending, rate)
        if not result.eligible:
            return None

        ledger.append_transaction(
            session, member_id, Currency.STAR, result.credits, reason,
        )
        event_log.mark_consumed(session, member_id, result.events_to_consume)

    logger.info(
        "Awarded %d STAR to %s for %d shares (%d left pending)",
        result.credits, member_id, result.events_to_consume, result.remainder,
    )
    return ShareAward(member_id, result.credits)


# ---------------------------------------------------------------------------
# Full pass
# ---------------------------------------------------------------------------
def run_reconciliation(
    engine: Engine,
    notifier: Notifier | None = None,
    *,
    rate: int = DEFAULT_SHARES_PER_STAR,
    reason: str = SHARE_AWARD_REASON,
) -> list[ShareAward]:
    """Run one reconciliation pass and return the awards made.

    Never raises for a single member's failure; those are logged and the
    member is retried on the next pass.
    """
    with get_session(engine) as session:
        candidates = event_log.count_unconsumed_by_member(session, min_count=rate)

    awards: list[ShareAward] = []
    failed: list[str] = []

    for member_id in candidates:
        try:
            award = award_member(engine, member_id, rate=rate, reason=reason)
        except Exception:
            failed.append(member_id)
            logger.exception("Share award failed for %s; will retry next pass", member_id)
            continue

        if award is None:
            continue
        awards.append(award)
        _announce(notifier, award)

    if failed:
        logger.warning(
            "Share reconciliation: %d awarded, %d failed of %d candidates: %s",
            len(awards), len(failed), len(candidates), failed,
        )
    else:
        logger.info(
            "Share reconciliation: %d awarded of %d candidates",
            len(awards), len(candidates),
        )
    return awards


def _announce(notifier: Notifier | None, award: ShareAward) -> None:
    notify_member(notifier, award.member_id, {
        "type": "star_award",
        "member_id": award.member_id,
        "delta": award.delta,
        "message": f"You earned {award.delta} STAR for your shares!",
    })
    notify_admins(notifier, {
        "type": "star_award_event",
        "member_id": award.member_id,
        "delta": award.delta,
        "timestamp": datetime.now(UTC).isoformat(),
    })
