"""
tests/test_review_service.py — Video Review Moderation Tests
=============================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import add_member
from starledger.constants import REVIEW_APPROVED_REASON
from starledger.database.models import AdminLog, StarTransaction
from starledger.engine.events import ReviewEventPayload
from starledger.errors import NotFoundError, ValidationError
from starledger.services import ledger, review_service


@pytest.fixture
def review_id(db_engine, notifier) -> int:
    add_member(db_engine, "admin-1", role="admin")
    review = review_service.submit_review(db_engine, ReviewEventPayload(
        member_id="member-1",
        business_name="Corner Barber",
        business_address="48 Oak Avenue",
        service_type="Barbershop",
        what_makes_special="Walk-ins welcome all weekend",
        video_url="https://video.example.com/v/42",
        checklist={"clear_video_quality": True, "clear_location": True},
    ), notifier)
    return review.id


class TestSubmit:
    def test_pending_and_admins_told(self, db_engine, review_id, notifier):
        pending = review_service.list_reviews(db_engine)
        assert [r["id"] for r in pending] == [review_id]
        assert pending[0]["self_score"] == 2
        assert notifier.types_broadcast() == ["review_submitted"]


class TestApprove:
    def test_credits_star_and_audits(self, db_engine, review_id, notifier):
        review = review_service.approve_review(
            db_engine, review_id, admin_id="admin-1", notifier=notifier,
        )

        assert review.status == "approved"
        assert review.reviewed_by == "admin-1"
        assert ledger.get_balance(db_engine, "member-1", "STAR") == 3
        with Session(db_engine) as session:
            row = session.scalar(select(StarTransaction))
            assert row.reason == REVIEW_APPROVED_REASON
            log = session.scalar(select(AdminLog))
            assert log.action_type == "APPROVE_REVIEW"
            assert log.before_snapshot["status"] == "pending"
            assert log.after_snapshot["status"] == "approved"
        assert "review_approved" in notifier.types_sent()

    def test_custom_star_amount(self, db_engine, review_id):
        review_service.approve_review(db_engine, review_id, admin_id="admin-1", stars=5)
        assert ledger.get_balance(db_engine, "member-1", "STAR") == 5

    def test_approving_twice_is_rejected(self, db_engine, review_id):
        review_service.approve_review(db_engine, review_id, admin_id="admin-1")
        with pytest.raises(ValidationError, match="already approved"):
            review_service.approve_review(db_engine, review_id, admin_id="admin-1")
        assert ledger.get_balance(db_engine, "member-1", "STAR") == 3

    def test_rejects_non_positive_stars(self, db_engine, review_id):
        with pytest.raises(ValidationError):
            review_service.approve_review(db_engine, review_id, admin_id="admin-1", stars=0)

    def test_unknown_review(self, db_engine):
        with pytest.raises(NotFoundError):
            review_service.approve_review(db_engine, 999, admin_id="admin-1")


class TestReject:
    def test_no_star_and_cannot_approve_after(self, db_engine, review_id):
        review = review_service.reject_review(
            db_engine, review_id, admin_id="admin-1", reason="Address not shown",
        )
        assert review.status == "rejected"
        assert ledger.get_balance(db_engine, "member-1", "STAR") == 0

        with pytest.raises(ValidationError):
            review_service.approve_review(db_engine, review_id, admin_id="admin-1")

        with Session(db_engine) as session:
            log = session.scalar(select(AdminLog))
            assert log.reason == "Address not shown"

    def test_list_by_status(self, db_engine, review_id):
        review_service.reject_review(db_engine, review_id, admin_id="admin-1")
        assert review_service.list_reviews(db_engine) == []
        assert len(review_service.list_reviews(db_engine, "rejected")) == 1
        assert len(review_service.list_reviews(db_engine, None)) == 1

    def test_list_unknown_status(self, db_engine):
        with pytest.raises(ValidationError):
            review_service.list_reviews(db_engine, "lost")
