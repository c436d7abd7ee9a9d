"""
starledger.services.reward_service — Rule-based Reward Grants
==============================================================

Synchronous XP/STAR issuance for a single qualifying action, looked up
by ``(category, trigger)`` in the ``reward_rules`` table.

Contract:
- A missing rule is not an error; the grant is ``{xp: 0, stars: 0}``.
- A currency whose rule value is 0 gets no ledger row.
- Both rows (XP, STAR) commit together with the action that caused them.
- Grants are **not** idempotent.  Callers invoke them once per action,
  inside the same handler that records the action (see
  :func:`record_activity` and :func:`record_ai_metric`).
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from starledger.constants import AI_METRIC_THRESHOLDS, rule_reason
from starledger.database.engine import get_session
from starledger.database.models import ActivityEvent, AiMetric, Currency, RewardRule
from starledger.errors import ValidationError
from starledger.services import ledger
from starledger.services.members import upsert_member
from starledger.services.notifier import Notifier, notify_admins, notify_member

logger = logging.getLogger(__name__)

# (category, kind) → reward trigger for the activity handlers
ACTIVITY_TRIGGERS: dict[tuple[str, str], str] = {
    ("fitness", "workout"): "workout_complete",
    ("fitness", "water"): "water_log",
    ("study", "journal"): "journal_entry",
    ("study", "share"): "share_completed",
    ("language", "practice"): "daily_practice_complete",
}


# ---------------------------------------------------------------------------
# RewardResult — what a grant produced
# ---------------------------------------------------------------------------
@dataclass
class RewardResult:
    """Amounts credited by one grant."""

    xp: int = 0
    stars: int = 0
    category: str = ""
    trigger: str = ""

    def as_dict(self) -> dict[str, int]:
        return {"xp": self.xp, "stars": self.stars}


@dataclass
class MetricOutcome:
    """Result of :func:`record_ai_metric`."""

    metric_type: str
    score: float
    threshold: float
    rewarded: bool
    reward: RewardResult = field(default_factory=RewardResult)

    def as_dict(self) -> dict:
        data = asdict(self)
        data["reward"] = self.reward.as_dict()
        return data


# ---------------------------------------------------------------------------
# Rule lookup
# ---------------------------------------------------------------------------
def lookup_rule(session: Session, category: str, trigger: str) -> tuple[int, int]:
    """Return ``(xp_value, star_value)``, or ``(0, 0)`` when no rule exists."""
    row = session.execute(
        select(RewardRule.xp_value, RewardRule.star_value)
        .where(RewardRule.category == category, RewardRule.trigger == trigger)
        .limit(1)
    ).first()
    if row is None:
        logger.debug("No reward rule for %s:%s", category, trigger)
        return 0, 0
    return int(row.xp_value or 0), int(row.star_value or 0)


def apply_grant(
    session: Session, member_id: str, category: str, trigger: str,
) -> RewardResult:
    """Append the rule's XP/STAR rows inside the caller's transaction."""
    xp, stars = lookup_rule(session, category, trigger)
    reason = rule_reason(category, trigger)

    if xp != 0:
        ledger.append_transaction(session, member_id, Currency.XP, xp, reason)
    if stars != 0:
        ledger.append_transaction(session, member_id, Currency.STAR, stars, reason)

    return RewardResult(xp=xp, stars=stars, category=category, trigger=trigger)


def announce_grant(
    notifier: Notifier | None, member_id: str, result: RewardResult,
) -> None:
    """Best-effort push of a committed grant to the member and admins."""
    if result.xp == 0 and result.stars == 0:
        return
    notify_member(notifier, member_id, {
        "type": "reward_update",
        "member_id": member_id,
        "category": result.category,
        "trigger": result.trigger,
        "delta_xp": result.xp,
        "delta_stars": result.stars,
        "message": (
            f"+{result.xp} XP • +{result.stars} STAR "
            f"({rule_reason(result.category, result.trigger)})"
        ),
    })
    notify_admins(notifier, {
        "type": "member_activity",
        "member_id": member_id,
        "activity": f"{result.category}_{result.trigger}",
        "xp": result.xp,
        "stars": result.stars,
        "timestamp": datetime.now(UTC).isoformat(),
    })


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------
def grant_reward(
    engine: Engine,
    member_id: str,
    category: str,
    trigger: str,
    notifier: Notifier | None = None,
) -> RewardResult:
    """Issue the ``(category, trigger)`` reward to *member_id*.

    Returns the amounts credited (possibly zero).
    """
    with get_session(engine) as session:
        upsert_member(session, member_id)
        result = apply_grant(session, member_id, category, trigger)

    announce_grant(notifier, member_id, result)
    return result


def record_activity(
    engine: Engine,
    member_id: str,
    category: str,
    kind: str,
    details: dict | None = None,
    notifier: Notifier | None = None,
) -> RewardResult:
    """Record a fitness / study / language action and grant its reward.

    The activity row and the ledger rows commit in one transaction, so a
    retried request that failed never leaves a reward without its action.
    """
    trigger = ACTIVITY_TRIGGERS.get((category, kind))
    if trigger is None:
        raise ValidationError(f"Unknown activity: {category}/{kind}")

    with get_session(engine) as session:
        upsert_member(session, member_id)
        session.add(ActivityEvent(
            member_id=member_id,
            category=category,
            kind=kind,
            details=details or {},
        ))
        result = apply_grant(session, member_id, category, trigger)

    announce_grant(notifier, member_id, result)
    return result


def record_ai_metric(
    engine: Engine,
    member_id: str,
    metric_type: str,
    score: float,
    metadata: dict | None = None,
    notifier: Notifier | None = None,
) -> MetricOutcome:
    """Store an AI score and grant ``ai:<metric>_threshold`` when it qualifies.

    Scores come from opaque external models; this function only compares
    them against :data:`AI_METRIC_THRESHOLDS`.
    """
    threshold = AI_METRIC_THRESHOLDS.get(metric_type)
    if threshold is None:
        raise ValidationError(f"Unknown AI metric type: {metric_type!r}")
    try:
        score = float(score)
    except (TypeError, ValueError):
        raise ValidationError("score must be numeric") from None
    if not math.isfinite(score):
        raise ValidationError("score must be a finite number")

    rewarded = score >= threshold
    with get_session(engine) as session:
        upsert_member(session, member_id)
        session.add(AiMetric(
            member_id=member_id,
            metric_type=metric_type,
            score=score,
            metadata_=metadata or {},
        ))
        if rewarded:
            result = apply_grant(session, member_id, "ai", f"{metric_type}_threshold")
        else:
            result = RewardResult(category="ai", trigger=f"{metric_type}_threshold")

    announce_grant(notifier, member_id, result)
    notify_admins(notifier, {
        "type": "ai_feedback_event",
        "member_id": member_id,
        "metric_type": metric_type,
        "score": score,
        "rewarded": rewarded,
    })
    return MetricOutcome(
        metric_type=metric_type,
        score=score,
        threshold=threshold,
        rewarded=rewarded,
        reward=result,
    )
