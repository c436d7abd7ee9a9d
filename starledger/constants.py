"""
starledger.constants — Shared Constants & Helpers
==================================================

Single source of truth for ledger reason tags, rank tiers, and the
voting price list.  Import from here instead of duplicating strings in
services and routes.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Ledger reason tags
# ---------------------------------------------------------------------------
SHARE_AWARD_REASON = "3 shares = 1 STAR"
REVIEW_APPROVED_REASON = "Review video approved"
ADMIN_GRANT_REASON = "Admin grant"


def rule_reason(category: str, trigger: str) -> str:
    """Reason tag written by reward grants, e.g. ``fitness:water_log``."""
    return f"{category}:{trigger}"


# ---------------------------------------------------------------------------
# Rank tiers — THE single canonical step function
# ---------------------------------------------------------------------------
RANK_TIERS: list[tuple[int, str]] = [
    (1000, "Lion Council"),
    (600, "Pillar"),
    (300, "Builder"),
    (100, "Contributor"),
    (0, "Initiate"),
]
"""``(minimum lifetime STAR, tier name)``, highest threshold first."""

DEFAULT_RANK = "Initiate"


def rank_for_stars(total_stars: int) -> str:
    """Map a lifetime STAR total onto its named tier.

    Monotonic: a larger total never yields a lower tier.  Negative totals
    (possible after spending) fall through to the entry tier.
    """
    for threshold, name in RANK_TIERS:
        if total_stars >= threshold:
            return name
    return DEFAULT_RANK


# ---------------------------------------------------------------------------
# Voting
# ---------------------------------------------------------------------------
STARS_PER_VOTE = 3
MAX_VOTES_PER_CAST = 50
FREE_VOTES_PER_MONTH = 1


# ---------------------------------------------------------------------------
# AI metric thresholds (score ≥ threshold earns the ``ai`` reward rule)
# ---------------------------------------------------------------------------
AI_METRIC_THRESHOLDS: dict[str, float] = {
    "motion": 75.0,
    "voice": 70.0,
    "journal": 30.0,
}
