"""
starledger.services.event_log — Raw Event Append & Consumption
===============================================================

Central write path for qualifying member actions.

Responsibilities:
1. Append share events and review submissions (no dedup; a member may
   share as often as they like).
2. Count and list unconsumed share events per member.
3. Mark the *oldest* N unconsumed share events consumed, inside the
   caller's transaction.

Consumption strategy: each ``share_events`` row carries a boolean
``awarded`` flag.  There is no separate per-member cursor column; the
flag is the only record of whether a share has been converted.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select, update
from sqlalchemy.orm import Session

from starledger.database.engine import get_session
from starledger.database.models import ShareEvent, VideoReview
from starledger.engine.events import EventPayload, ReviewEventPayload, ShareEventPayload
from starledger.errors import LedgerError, ValidationError
from starledger.services.members import upsert_member

logger = logging.getLogger(__name__)


class ConsumptionConflict(LedgerError):
    """Fewer unconsumed events were available than the caller asked for.

    Raised inside the award transaction so the ledger append rolls back
    together with the partial marking.
    """


# ---------------------------------------------------------------------------
# Append
# ---------------------------------------------------------------------------
def append(session: Session, payload: EventPayload) -> ShareEvent | VideoReview:
    """Persist *payload* as the row type matching its variant.

    The member is upserted first.  Runs inside the caller's session.
    """
    payload.validate()
    upsert_member(session, payload.member_id)

    if isinstance(payload, ShareEventPayload):
        row: ShareEvent | VideoReview = ShareEvent(
            member_id=payload.member_id,
            platform=payload.platform,
            share_url=payload.share_url,
            proof_url=payload.proof_url,
            awarded=False,
            created_at=payload.created_at,
        )
    elif isinstance(payload, ReviewEventPayload):
        row = VideoReview(
            member_id=payload.member_id,
            business_name=payload.business_name,
            business_address=payload.business_address,
            service_type=payload.service_type,
            what_makes_special=payload.what_makes_special,
            video_url=payload.video_url,
            checklist=dict(payload.checklist),
            self_score=payload.self_score,
            created_at=payload.created_at,
        )
    else:
        raise ValidationError(f"Unsupported event payload: {type(payload).__name__}")

    session.add(row)
    session.flush()
    return row


def record_event(
    engine: Engine,
    payload: EventPayload,
    *,
    display_name: str | None = None,
    email: str | None = None,
) -> ShareEvent | VideoReview:
    """Append *payload* in its own transaction and return the detached row."""
    with get_session(engine) as session:
        if display_name is not None or email is not None:
            upsert_member(
                session, payload.member_id, display_name=display_name, email=email,
            )
        row = append(session, payload)
        session.commit()
        session.refresh(row)
        session.expunge(row)

    logger.debug("Recorded %s event %d for %s", payload.kind, row.id, payload.member_id)
    return row


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def _unconsumed():
    return ShareEvent.awarded.is_(False)


def count_unconsumed(session: Session, member_id: str) -> int:
    """Number of share events for *member_id* not yet converted."""
    return session.scalar(
        select(func.count())
        .select_from(ShareEvent)
        .where(ShareEvent.member_id == member_id, _unconsumed())
    ) or 0


def count_unconsumed_by_member(session: Session, min_count: int = 1) -> dict[str, int]:
    """Map member_id → unconsumed share count, for members with at least
    *min_count* unconsumed shares."""
    rows = session.execute(
        select(ShareEvent.member_id, func.count().label("pending"))
        .where(_unconsumed())
        .group_by(ShareEvent.member_id)
        .having(func.count() >= min_count)
        .order_by(ShareEvent.member_id)
    ).all()
    return {row.member_id: row.pending for row in rows}


def list_unconsumed(
    session: Session, member_id: str | None = None,
) -> dict[str, list[ShareEvent]]:
    """Unconsumed share events grouped by member, each list oldest-first."""
    stmt = select(ShareEvent).where(_unconsumed())
    if member_id is not None:
        stmt = stmt.where(ShareEvent.member_id == member_id)
    stmt = stmt.order_by(ShareEvent.member_id, ShareEvent.created_at, ShareEvent.id)

    grouped: dict[str, list[ShareEvent]] = defaultdict(list)
    for event in session.scalars(stmt):
        grouped[event.member_id].append(event)
    return dict(grouped)


# ---------------------------------------------------------------------------
# Consumption
# ---------------------------------------------------------------------------
def mark_consumed(
    session: Session,
    member_id: str,
    count: int,
    *,
    now: datetime | None = None,
) -> list[int]:
    """Flip exactly *count* of the member's oldest unconsumed shares to consumed.

    Selection is ``ORDER BY created_at, id`` so repeated runs converge on the
    same rows.  The candidate rows are locked ``FOR UPDATE`` and the UPDATE
    re-checks ``awarded IS FALSE``; if the row count does not match, a
    concurrent writer got there first and :class:`ConsumptionConflict` is
    raised so the enclosing transaction rolls back.

    Returns the consumed event IDs.
    """
    if count <= 0:
        return []

    ids = list(session.scalars(
        select(ShareEvent.id)
        .where(ShareEvent.member_id == member_id, _unconsumed())
        .order_by(ShareEvent.created_at, ShareEvent.id)
        .limit(count)
        .with_for_update()
    ).all())
    if len(ids) < count:
        raise ConsumptionConflict(
            f"Member {member_id!r} has {len(ids)} unconsumed shares, needed {count}"
        )

    result = session.execute(
        update(ShareEvent)
        .where(ShareEvent.id.in_(ids), _unconsumed())
        .values(awarded=True, awarded_at=now or datetime.now(UTC))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != count:
        raise ConsumptionConflict(
            f"Marked {result.rowcount} of {count} shares for member {member_id!r}"
        )
    return ids
