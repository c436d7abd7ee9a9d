"""
starledger.services.review_service — Video Review Moderation
=============================================================

Members submit video reviews of local businesses; an admin approves
(crediting STAR) or rejects them.  A review leaves ``pending`` exactly
once, so approving twice can never pay twice.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, select

from starledger.constants import REVIEW_APPROVED_REASON
from starledger.database.engine import get_session
from starledger.database.models import (
    AdminActionType,
    Currency,
    ReviewStatus,
    VideoReview,
)
from starledger.engine.events import ReviewEventPayload
from starledger.errors import NotFoundError, ValidationError
from starledger.services import event_log, ledger
from starledger.services.admin_service import log_admin_action, row_to_dict
from starledger.services.notifier import Notifier, notify_admins, notify_member

logger = logging.getLogger(__name__)

DEFAULT_REVIEW_STARS = 3


def submit_review(
    engine: Engine,
    payload: ReviewEventPayload,
    notifier: Notifier | None = None,
) -> VideoReview:
    """Store a pending review and tell the admins about it."""
    review = event_log.record_event(engine, payload)
    logger.info("Review %d submitted by %s", review.id, review.member_id)
    notify_admins(notifier, {
        "type": "review_submitted",
        "review_id": review.id,
        "member_id": review.member_id,
        "business_name": review.business_name,
    })
    return review


def _lock_pending(session, review_id: int) -> VideoReview:
    review = session.scalar(
        select(VideoReview).where(VideoReview.id == review_id).with_for_update()
    )
    if review is None:
        raise NotFoundError(f"Unknown review: {review_id}")
    if review.status != ReviewStatus.PENDING.value:
        raise ValidationError(f"Review {review_id} is already {review.status}")
    return review


def approve_review(
    engine: Engine,
    review_id: int,
    *,
    admin_id: str,
    stars: int = DEFAULT_REVIEW_STARS,
    notifier: Notifier | None = None,
) -> VideoReview:
    """Approve a pending review and credit *stars* STAR to its author."""
    if stars < 1:
        raise ValidationError("stars must be at least 1")

    with get_session(engine) as session:
        review = _lock_pending(session, review_id)
        before = row_to_dict(review)

        review.status = ReviewStatus.APPROVED.value
        review.reviewed_by = admin_id
        review.reviewed_at = datetime.now(UTC)
        ledger.append_transaction(
            session, review.member_id, Currency.STAR, stars, REVIEW_APPROVED_REASON,
        )
        session.flush()
        log_admin_action(
            session,
            actor_id=admin_id,
            action_type=AdminActionType.APPROVE_REVIEW,
            target_table="video_reviews",
            target_id=str(review_id),
            before=before,
            after=row_to_dict(review),
            reason=f"+{stars} STAR",
        )
        session.commit()
        session.refresh(review)
        session.expunge(review)

    logger.info("Review %d approved by %s (+%d STAR)", review_id, admin_id, stars)
    notify_member(notifier, review.member_id, {
        "type": "review_approved",
        "review_id": review_id,
        "delta": stars,
        "message": f"Your review of {review.business_name} was approved: +{stars} STAR",
    })
    return review


def reject_review(
    engine: Engine,
    review_id: int,
    *,
    admin_id: str,
    reason: str | None = None,
    notifier: Notifier | None = None,
) -> VideoReview:
    """Reject a pending review.  No ledger rows are written."""
    with get_session(engine) as session:
        review = _lock_pending(session, review_id)
        before = row_to_dict(review)

        review.status = ReviewStatus.REJECTED.value
        review.reviewed_by = admin_id
        review.reviewed_at = datetime.now(UTC)
        session.flush()
        log_admin_action(
            session,
            actor_id=admin_id,
            action_type=AdminActionType.REJECT_REVIEW,
            target_table="video_reviews",
            target_id=str(review_id),
            before=before,
            after=row_to_dict(review),
            reason=reason,
        )
        session.commit()
        session.refresh(review)
        session.expunge(review)

    logger.info("Review %d rejected by %s", review_id, admin_id)
    notify_member(notifier, review.member_id, {
        "type": "review_rejected",
        "review_id": review_id,
        "reason": reason,
    })
    return review


def list_reviews(
    engine: Engine,
    status: ReviewStatus | str | None = ReviewStatus.PENDING,
    *,
    limit: int = 100,
) -> list[dict]:
    """Reviews filtered by *status* (``None`` for all), oldest first."""
    stmt = select(VideoReview)
    if status is not None:
        try:
            status = ReviewStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown review status: {status!r}") from None
        stmt = stmt.where(VideoReview.status == status.value)
    stmt = stmt.order_by(VideoReview.created_at, VideoReview.id).limit(limit)

    with get_session(engine) as session:
        return [row_to_dict(r) for r in session.scalars(stmt)]
