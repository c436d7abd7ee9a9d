"""
starledger.database.seed — Default Reward Rule Seeder
======================================================

Baseline ``reward_rules`` rows so fitness, study, language and AI
handlers grant something out of the box.

Idempotent — only inserts (category, trigger) pairs that don't already
exist.  Values edited later by an operator are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from starledger.database.models import RewardRule

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default rule catalogue
# ---------------------------------------------------------------------------
DEFAULT_REWARD_RULES: dict[tuple[str, str], tuple[int, int, str]] = {
    ("fitness", "workout_complete"): (20, 1, "Completed a logged workout"),
    ("fitness", "water_log"): (2, 0, "Logged water intake"),
    ("study", "journal_entry"): (10, 1, "Wrote a study journal entry"),
    ("study", "share_completed"): (5, 0, "Shared a study topic"),
    ("language", "daily_practice_complete"): (15, 1, "Finished daily language practice"),
    ("ai", "motion_threshold"): (0, 1, "AI workout accuracy at or above threshold"),
    ("ai", "voice_threshold"): (0, 1, "AI language clarity at or above threshold"),
    ("ai", "journal_threshold"): (0, 1, "Reflective journal positivity at or above threshold"),
}
"""Each entry maps ``(category, trigger)`` → ``(xp_value, star_value, description)``."""


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_reward_rules(engine: Engine) -> int:
    """Insert default reward rules that don't yet exist.

    Returns the number of rows inserted.
    """
    session = Session(engine)
    inserted = 0
    try:
        existing = {
            (row.category, row.trigger)
            for row in session.execute(
                select(RewardRule.category, RewardRule.trigger)
            ).all()
        }
        for (category, trigger), (xp, stars, desc) in DEFAULT_REWARD_RULES.items():
            if (category, trigger) in existing:
                continue
            session.add(RewardRule(
                category=category,
                trigger=trigger,
                xp_value=xp,
                star_value=stars,
                description=desc,
            ))
            inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default reward rules.", inserted)
    return inserted
