"""
tests/test_event_log.py — Event Log Append & Consumption Tests
===============================================================
Covers appending share / review payloads, unconsumed counts and the
oldest-first consumption marker.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import BASE_TIME, add_member, add_shares
from starledger.database.models import Member, ShareEvent, VideoReview
from starledger.engine.events import ReviewEventPayload, ShareEventPayload
from starledger.errors import ValidationError
from starledger.services import event_log


def _review_payload(member_id: str = "member-1", **overrides) -> ReviewEventPayload:
    fields = dict(
        member_id=member_id,
        business_name="Mama's Kitchen",
        business_address="12 Market Street",
        service_type="Restaurant",
        what_makes_special="Family recipes since 1988",
        video_url="https://video.example.com/v/1",
        checklist={
            "clear_video_quality": True,
            "clear_location": True,
            "address_spoken_or_shown": False,
            "service_type_clear": True,
            "what_makes_special_clear": True,
        },
    )
    fields.update(overrides)
    return ReviewEventPayload(**fields)


class TestRecordEvent:
    def test_share_creates_member_and_row(self, db_engine):
        """First share for an unknown member upserts the member."""
        row = event_log.record_event(
            db_engine,
            ShareEventPayload(member_id="member-1", platform="tiktok",
                              share_url="https://tiktok.com/@a/1"),
        )
        assert row.id is not None
        assert row.awarded is False

        with Session(db_engine) as session:
            assert session.get(Member, "member-1") is not None
            assert session.get(ShareEvent, row.id).platform == "tiktok"

    def test_no_dedup(self, db_engine):
        payload = ShareEventPayload(member_id="member-1", share_url="https://x.com/a/1")
        event_log.record_event(db_engine, payload)
        event_log.record_event(db_engine, payload)

        with Session(db_engine) as session:
            assert event_log.count_unconsumed(session, "member-1") == 2

    def test_review_row_with_self_score(self, db_engine):
        row = event_log.record_event(db_engine, _review_payload())
        assert isinstance(row, VideoReview)
        assert row.status == "pending"
        assert row.self_score == 4

    def test_profile_fields_are_stored(self, db_engine):
        event_log.record_event(
            db_engine, ShareEventPayload(member_id="member-1"),
            display_name="Ada", email="ada@example.com",
        )
        with Session(db_engine) as session:
            member = session.get(Member, "member-1")
            assert member.display_name == "Ada"
            assert member.email == "ada@example.com"

    @pytest.mark.parametrize(
        "payload",
        [
            ShareEventPayload(member_id="m"),
            ShareEventPayload(member_id="member-1", platform="myspace"),
            ShareEventPayload(member_id="member-1", share_url="ftp://nope"),
            ShareEventPayload(member_id="member-1", consumed=True),
        ],
    )
    def test_invalid_share_writes_nothing(self, db_engine, payload):
        with pytest.raises(ValidationError):
            event_log.record_event(db_engine, payload)
        with Session(db_engine) as session:
            assert session.scalars(select(ShareEvent)).all() == []
            assert session.scalars(select(Member)).all() == []

    def test_invalid_review_rejected(self, db_engine):
        with pytest.raises(ValidationError):
            event_log.record_event(db_engine, _review_payload(what_makes_special="meh"))

    def test_pre_consumed_review_rejected(self, db_engine):
        with pytest.raises(ValidationError, match="unconsumed"):
            event_log.record_event(db_engine, _review_payload(consumed=True))


class TestUnconsumedQueries:
    def test_count_by_member_respects_minimum(self, db_engine):
        add_member(db_engine, "alice")
        add_member(db_engine, "bob")
        add_shares(db_engine, "alice", 4)
        add_shares(db_engine, "bob", 2)

        with Session(db_engine) as session:
            assert event_log.count_unconsumed_by_member(session) == {"alice": 4, "bob": 2}
            assert event_log.count_unconsumed_by_member(session, min_count=3) == {"alice": 4}

    def test_list_is_grouped_oldest_first(self, db_engine):
        add_member(db_engine, "alice")
        # Inserted newest-first to prove ordering is by created_at
        with Session(db_engine) as session:
            for minutes in (5, 1, 3):
                session.add(ShareEvent(
                    member_id="alice", created_at=BASE_TIME + timedelta(minutes=minutes),
                ))
            session.commit()

        with Session(db_engine) as session:
            grouped = event_log.list_unconsumed(session)
            times = [e.created_at for e in grouped["alice"]]
            assert times == sorted(times)
            assert len(times) == 3


class TestMarkConsumed:
    def test_marks_oldest_first(self, db_engine):
        add_member(db_engine, "alice")
        ids = add_shares(db_engine, "alice", 5)

        with Session(db_engine) as session:
            consumed = event_log.mark_consumed(session, "alice", 3)
            session.commit()

        assert consumed == ids[:3]
        with Session(db_engine) as session:
            remaining = event_log.list_unconsumed(session, "alice")["alice"]
            assert [e.id for e in remaining] == ids[3:]
            assert all(
                session.get(ShareEvent, i).awarded_at is not None for i in ids[:3]
            )

    def test_zero_count_is_noop(self, db_engine):
        add_member(db_engine, "alice")
        add_shares(db_engine, "alice", 2)
        with Session(db_engine) as session:
            assert event_log.mark_consumed(session, "alice", 0) == []
            assert event_log.count_unconsumed(session, "alice") == 2

    def test_raises_when_not_enough_events(self, db_engine):
        add_member(db_engine, "alice")
        add_shares(db_engine, "alice", 2)
        with Session(db_engine) as session:
            with pytest.raises(event_log.ConsumptionConflict):
                event_log.mark_consumed(session, "alice", 3)

    def test_already_awarded_events_are_not_remarked(self, db_engine):
        add_member(db_engine, "alice")
        add_shares(db_engine, "alice", 3)
        with Session(db_engine) as session:
            event_log.mark_consumed(session, "alice", 3)
            session.commit()
        with Session(db_engine) as session:
            with pytest.raises(event_log.ConsumptionConflict):
                event_log.mark_consumed(session, "alice", 1)
