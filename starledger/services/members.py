"""
starledger.services.members — Member upsert helpers
====================================================

Every write path begins by upserting the acting member, so ledger and
event rows always have a valid ``member_id`` to point at.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from starledger.database.models import Member
from starledger.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def upsert_member(
    session: Session,
    member_id: str,
    *,
    display_name: str | None = None,
    email: str | None = None,
    photo_url: str | None = None,
    provider: str | None = None,
) -> Member:
    """Fetch or insert a Member row, refreshing any profile fields given.

    Fields passed as ``None`` keep their stored value.  ``role`` is never
    touched here; only :func:`admin_service.set_member_role` changes it.
    """
    if not member_id or len(member_id) < 2:
        raise ValidationError("member_id must be at least 2 characters")

    member = session.get(Member, member_id)
    if member is None:
        member = Member(
            id=member_id,
            provider=provider or "google",
            display_name=display_name,
            email=email,
            photo_url=photo_url,
        )
        session.add(member)
        session.flush()
        logger.info("Created member %s", member_id)
    else:
        if display_name is not None:
            member.display_name = display_name
        if email is not None:
            member.email = email
        if photo_url is not None:
            member.photo_url = photo_url
        if provider is not None:
            member.provider = provider
    member.last_active_at = datetime.now(UTC)
    return member


def require_member(session: Session, member_id: str, *, lock: bool = False) -> Member:
    """Return the Member row or raise :class:`NotFoundError`.

    With ``lock=True`` the row is selected ``FOR UPDATE`` so concurrent
    writers touching the same member serialize behind this transaction.
    """
    stmt = select(Member).where(Member.id == member_id)
    if lock:
        stmt = stmt.with_for_update()
    member = session.scalar(stmt)
    if member is None:
        raise NotFoundError(f"Unknown member: {member_id!r}")
    return member
