"""
ZE Club — Community Points, Ranks & Rewards
============================================
Backend for the ZE Club community: members complete missions for points,
climb a five-tier rank ladder, and spend ZE Coins on rewards.  Admins
verify submissions, manage the catalogue, and fulfil redemptions.

Package layout::

    zeclub/
    ├── config.py          # YAML → typed Python config
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, transactional session, async bridge
    │   ├── models.py      # ORM models
    │   └── seed.py        # Startup seeding of site settings
    ├── engine/
    │   ├── ranks.py       # Rank resolver (pure)
    │   └── eligibility.py # Reward lock / discount rules (pure)
    ├── services/
    │   ├── errors.py            # Ledger error taxonomy
    │   ├── admin_service.py     # Audit log helpers
    │   ├── user_service.py      # Balances, ranks, leaderboard, roles
    │   ├── mission_service.py   # Submissions + mission settlement
    │   ├── reward_service.py    # Reward catalogue + eligibility view
    │   ├── redemption_service.py # Redemption settlement + refunds
    │   └── settings_service.py  # Site settings
    └── api/
        ├── main.py        # FastAPI app
        ├── auth.py        # Bearer token introspection
        └── routes/        # Public, member and admin REST endpoints
"""

__version__ = "0.1.0"
