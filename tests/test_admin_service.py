"""
tests/test_admin_service.py — Admin Grants, Roles & Audit Trail
================================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import add_member, add_shares
from starledger.constants import ADMIN_GRANT_REASON
from starledger.database.models import AdminLog, BdTransaction, Member
from starledger.errors import NotFoundError, ValidationError
from starledger.services import admin_service, ledger, reward_service


@pytest.fixture(autouse=True)
def members(db_engine):
    add_member(db_engine, "admin-1", role="admin")
    add_member(db_engine, "alice")


class TestIssueCurrency:
    def test_issue_bd_writes_ledger_and_audit(self, db_engine, notifier):
        result = admin_service.issue_currency(
            db_engine, admin_id="admin-1", member_id="alice",
            currency="BD", amount=50, reason="Community cleanup", notifier=notifier,
        )

        assert result == {"member_id": "alice", "currency": "BD", "amount": 50, "balance": 50}
        with Session(db_engine) as session:
            row = session.scalar(select(BdTransaction))
            assert (row.delta, row.reason) == (50, "Community cleanup")
            log = session.scalar(select(AdminLog))
            assert log.action_type == "ISSUE_CURRENCY"
            assert log.actor_id == "admin-1"
            assert log.target_table == "bd_transactions"
            assert log.before_snapshot == {"currency": "BD", "balance": 0}
            assert log.after_snapshot == {"currency": "BD", "balance": 50}
        assert notifier.types_sent() == ["admin_grant"]

    def test_default_reason(self, db_engine):
        admin_service.issue_currency(
            db_engine, admin_id="admin-1", member_id="alice", currency="STAR", amount=2,
        )
        rows = ledger.list_transactions(db_engine, "alice", "STAR")
        assert rows[0]["reason"] == ADMIN_GRANT_REASON

    def test_negative_correction_allowed(self, db_engine):
        admin_service.issue_currency(
            db_engine, admin_id="admin-1", member_id="alice", currency="BD", amount=10,
        )
        result = admin_service.issue_currency(
            db_engine, admin_id="admin-1", member_id="alice", currency="BD", amount=-4,
        )
        assert result["balance"] == 6

    def test_zero_amount_rejected(self, db_engine):
        with pytest.raises(ValidationError):
            admin_service.issue_currency(
                db_engine, admin_id="admin-1", member_id="alice", currency="BD", amount=0,
            )
        with Session(db_engine) as session:
            assert session.scalars(select(AdminLog)).all() == []

    def test_unknown_member(self, db_engine):
        with pytest.raises(NotFoundError):
            admin_service.issue_currency(
                db_engine, admin_id="admin-1", member_id="ghost", currency="BD", amount=5,
            )

    def test_unknown_currency(self, db_engine):
        with pytest.raises(ValidationError):
            admin_service.issue_currency(
                db_engine, admin_id="admin-1", member_id="alice", currency="DOGE", amount=5,
            )


class TestSetRole:
    def test_promote_and_audit(self, db_engine):
        member = admin_service.set_member_role(
            db_engine, admin_id="admin-1", member_id="alice", role="admin",
        )
        assert member.role == "admin"
        with Session(db_engine) as session:
            assert session.get(Member, "alice").is_admin
            log = session.scalar(select(AdminLog))
            assert log.action_type == "SET_ROLE"
            assert log.before_snapshot["role"] == "user"
            assert log.after_snapshot["role"] == "admin"

    def test_invalid_role(self, db_engine):
        with pytest.raises(ValidationError):
            admin_service.set_member_role(
                db_engine, admin_id="admin-1", member_id="alice", role="overlord",
            )


class TestDashboardReads:
    def test_overview_counts(self, db_engine):
        add_shares(db_engine, "alice", 2)
        admin_service.issue_currency(
            db_engine, admin_id="admin-1", member_id="alice", currency="BD", amount=7,
        )

        overview = admin_service.get_overview(db_engine)

        assert overview["members"] == 2
        assert overview["pending_shares"] == 2
        assert overview["pending_reviews"] == 0
        assert overview["issued"] == {"STAR": 0, "BD": 7, "XP": 0}

    def test_activity_stream_newest_first(self, db_engine):
        reward_service.record_activity(db_engine, "alice", "fitness", "water")
        reward_service.record_activity(db_engine, "alice", "fitness", "workout")

        stream = admin_service.activity_stream(db_engine)
        assert [e["kind"] for e in stream] == ["workout", "water"]

    def test_recent_admin_actions(self, db_engine):
        admin_service.set_member_role(
            db_engine, admin_id="admin-1", member_id="alice", role="admin",
        )
        actions = admin_service.recent_admin_actions(db_engine)
        assert [a["action_type"] for a in actions] == ["SET_ROLE"]
