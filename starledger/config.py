"""
starledger.config — YAML Configuration Loader
==============================================

Reads ``config.yaml`` for service settings: community identity, job
intervals and the share → STAR exchange rate.  Secrets (``DATABASE_URL``,
``JWT_SECRET``) never live here; they come from the environment.

Usage::

    from starledger.config import load_config

    cfg = load_config()                 # reads ./config.yaml by default
    print(cfg.shares_per_star)          # 3
    print(cfg.reconcile_interval_seconds)  # 300
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class StarLedgerConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str = "StarLedger"

    # Share conversion
    shares_per_star: int = 3

    # Jobs
    scheduler_enabled: bool = True
    reconcile_interval_seconds: int = 300
    rank_refresh_interval_seconds: int = 3600

    # Reviews
    review_default_stars: int = 3

    # Dashboard
    cors_origins: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> StarLedgerConfig:
    """Read *path* and return a :class:`StarLedgerConfig` instance.

    Keys missing from the file keep their dataclass defaults.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If ``shares_per_star`` or an interval is not a positive integer.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = StarLedgerConfig()
    cfg = StarLedgerConfig(
        community_name=raw.get("community_name", defaults.community_name),
        shares_per_star=int(raw.get("shares_per_star", defaults.shares_per_star)),
        scheduler_enabled=bool(raw.get("scheduler_enabled", defaults.scheduler_enabled)),
        reconcile_interval_seconds=int(
            raw.get("reconcile_interval_seconds", defaults.reconcile_interval_seconds)
        ),
        rank_refresh_interval_seconds=int(
            raw.get("rank_refresh_interval_seconds", defaults.rank_refresh_interval_seconds)
        ),
        review_default_stars=int(
            raw.get("review_default_stars", defaults.review_default_stars)
        ),
        cors_origins=[str(o).rstrip("/") for o in raw.get("cors_origins") or []],
    )

    for name in (
        "shares_per_star",
        "reconcile_interval_seconds",
        "rank_refresh_interval_seconds",
    ):
        if getattr(cfg, name) <= 0:
            raise ValueError(f"{name} must be a positive integer")

    return cfg
