"""
tests/test_award_service.py — Share Reconciliation Engine Tests
================================================================
Exactly-once conversion of shares into STAR: correct deltas, no double
crediting across runs, no partial application, and per-member isolation.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import RecordingNotifier, add_member, add_shares
from starledger.constants import SHARE_AWARD_REASON
from starledger.database.models import ShareEvent, StarTransaction
from starledger.services import award_service, event_log, ledger


def _star_rows(engine, member_id: str) -> list[StarTransaction]:
    with Session(engine) as session:
        return list(session.scalars(
            select(StarTransaction).where(StarTransaction.member_id == member_id)
        ))


class TestRunReconciliation:
    def test_seven_shares_award_two_star(self, db_engine, notifier):
        """7 pending shares → one STAR row of delta 2, 6 consumed, 1 left."""
        add_member(db_engine, "alice")
        add_shares(db_engine, "alice", 7)

        awards = award_service.run_reconciliation(db_engine, notifier)

        assert awards == [("alice", 2)]
        rows = _star_rows(db_engine, "alice")
        assert len(rows) == 1
        assert rows[0].delta == 2
        assert rows[0].reason == SHARE_AWARD_REASON
        with Session(db_engine) as session:
            assert event_log.count_unconsumed(session, "alice") == 1
            consumed = session.scalars(
                select(ShareEvent).where(ShareEvent.awarded.is_(True))
            ).all()
            assert len(consumed) == 6

    def test_second_run_is_noop(self, db_engine, notifier):
        add_member(db_engine, "alice")
        add_shares(db_engine, "alice", 7)

        award_service.run_reconciliation(db_engine, notifier)
        second = award_service.run_reconciliation(db_engine, notifier)

        assert second == []
        assert len(_star_rows(db_engine, "alice")) == 1
        assert ledger.get_balance(db_engine, "alice", "STAR") == 2

    def test_remainder_converts_once_topped_up(self, db_engine):
        add_member(db_engine, "alice")
        add_shares(db_engine, "alice", 4)
        award_service.run_reconciliation(db_engine)
        add_shares(db_engine, "alice", 2, start=10)

        awards = award_service.run_reconciliation(db_engine)

        assert awards == [("alice", 1)]
        assert ledger.get_balance(db_engine, "alice", "STAR") == 2

    def test_below_rate_writes_nothing_and_notifies_nobody(self, db_engine, notifier):
        add_member(db_engine, "alice")
        add_shares(db_engine, "alice", 2)

        assert award_service.run_reconciliation(db_engine, notifier) == []
        assert _star_rows(db_engine, "alice") == []
        assert notifier.sent == []
        assert notifier.broadcasts == []

    def test_no_events_at_all(self, db_engine, notifier):
        assert award_service.run_reconciliation(db_engine, notifier) == []
        assert notifier.sent == []

    def test_members_are_independent(self, db_engine):
        for member_id, count in (("alice", 3), ("bob", 6), ("carol", 1)):
            add_member(db_engine, member_id)
            add_shares(db_engine, member_id, count)

        awards = award_service.run_reconciliation(db_engine)

        assert sorted(awards) == [("alice", 1), ("bob", 2)]
        assert ledger.get_balance(db_engine, "carol", "STAR") == 0

    def test_custom_rate(self, db_engine):
        add_member(db_engine, "alice")
        add_shares(db_engine, "alice", 10)
        awards = award_service.run_reconciliation(db_engine, rate=5)
        assert awards == [("alice", 2)]


class TestFailureIsolation:
    def test_failed_marking_rolls_back_star_row(self, db_engine):
        """An error after the STAR append leaves no row and no consumed events."""
        add_member(db_engine, "alice")
        add_shares(db_engine, "alice", 3)

        with patch.object(event_log, "mark_consumed", side_effect=RuntimeError("db down")):
            awards = award_service.run_reconciliation(db_engine)

        assert awards == []
        assert _star_rows(db_engine, "alice") == []
        with Session(db_engine) as session:
            assert event_log.count_unconsumed(session, "alice") == 3

    def test_failure_is_retried_next_pass(self, db_engine):
        add_member(db_engine, "alice")
        add_shares(db_engine, "alice", 3)

        with patch.object(event_log, "mark_consumed", side_effect=RuntimeError("db down")):
            award_service.run_reconciliation(db_engine)
        awards = award_service.run_reconciliation(db_engine)

        assert awards == [("alice", 1)]

    def test_one_member_failing_does_not_block_others(self, db_engine, caplog):
        add_member(db_engine, "alice")
        add_member(db_engine, "bob")
        add_shares(db_engine, "alice", 3)
        add_shares(db_engine, "bob", 3)

        real_mark = event_log.mark_consumed

        def flaky(session, member_id, count, **kw):
            if member_id == "alice":
                raise RuntimeError("lock timeout")
            return real_mark(session, member_id, count, **kw)

        with patch.object(event_log, "mark_consumed", side_effect=flaky):
            awards = award_service.run_reconciliation(db_engine)

        assert awards == [("bob", 1)]
        assert _star_rows(db_engine, "alice") == []
        assert "alice" in caplog.text

    def test_conflict_when_events_vanish_under_lock(self, db_engine):
        """If fewer events exist than counted, the award aborts cleanly."""
        add_member(db_engine, "alice")
        add_shares(db_engine, "alice", 3)

        with patch.object(event_log, "count_unconsumed", return_value=6):
            with pytest.raises(event_log.ConsumptionConflict):
                award_service.award_member(db_engine, "alice")

        assert _star_rows(db_engine, "alice") == []


class TestNotifications:
    def test_member_and_admins_notified_after_commit(self, db_engine, notifier):
        add_member(db_engine, "alice")
        add_shares(db_engine, "alice", 6)

        award_service.run_reconciliation(db_engine, notifier)

        assert notifier.sent == [("alice", {
            "type": "star_award",
            "member_id": "alice",
            "delta": 2,
            "message": "You earned 2 STAR for your shares!",
        })]
        assert notifier.types_broadcast() == ["star_award_event"]
        role, payload = notifier.broadcasts[0]
        assert role == "admin"
        assert payload["delta"] == 2

    def test_notifier_failure_does_not_undo_award(self, db_engine):
        add_member(db_engine, "alice")
        add_shares(db_engine, "alice", 3)

        awards = award_service.run_reconciliation(db_engine, RecordingNotifier(fail=True))

        assert awards == [("alice", 1)]
        assert ledger.get_balance(db_engine, "alice", "STAR") == 1
