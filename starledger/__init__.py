"""
StarLedger — Member Rewards & Ledger Backend
=============================================
Members earn STAR, Black Dollars (BD) and XP for community actions
(social shares, video reviews, fitness, study and language practice).
Every credit is an append-only ledger row; balances are sums, never
counters.  A scheduled reconciliation pass converts share events into
STAR at a fixed rate, exactly once.

Package layout::

    starledger/
    ├── __main__.py        # python -m starledger (uvicorn)
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Currencies, rank tiers, reason tags
    ├── errors.py          # LedgerError hierarchy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default reward rules
    ├── engine/
    │   ├── events.py      # Tagged event payloads
    │   └── conversion.py  # Pure share → STAR arithmetic
    ├── services/
    │   ├── members.py         # Member upsert + lookup
    │   ├── event_log.py       # Share event append / consume
    │   ├── ledger.py          # Ledger append, balances, ranks
    │   ├── award_service.py   # Share-to-STAR reconciliation pass
    │   ├── reward_service.py  # (category, trigger) reward grants
    │   ├── review_service.py  # Video review submit / approve
    │   ├── admin_service.py   # Audit-logged admin mutations
    │   ├── vote_service.py    # Contest voting + free votes
    │   ├── notifier.py        # Live-session notification sink
    │   └── scheduler.py       # Periodic jobs with overlap guard
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT → member, DB session
        └── routes/        # Ledger, actions, voting, admin
"""

__version__ = "0.1.0"
