"""
Council — Community Governance Engine
======================================
Batch processes that keep a professional-networking community honest:
behavior risk scoring, ethics-committee rotation per chapter, the
time-boxed expulsion review state machine, and penalty appeals.

Package layout::

    council/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Windows, thresholds, time helpers
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # All ORM models
    ├── engine/
    │   ├── events.py      # BehaviorSignal dataclass
    │   ├── risk_rules.py  # Table-driven risk rules (pure)
    │   └── results.py     # ItemResult / BatchReport
    ├── services/
    │   ├── behavior_service.py     # Event ingestion + risk scoring
    │   ├── rotation_service.py     # Committee rotation scheduler
    │   ├── expulsion_service.py    # Auto-expiry + vote reminders
    │   ├── appeal_service.py       # Penalty appeals
    │   └── notification_service.py # Inbox messages + push dispatch
    ├── jobs/
    │   └── __main__.py    # ``python -m council.jobs`` cron entry point
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Engine, config, JWT + role checks
        └── routes/        # Governance, appeals, admin endpoints
"""

__version__ = "0.1.0"
